"""
VAPID key handling for web push.

Generates P-256 key pairs in the URL-safe base64 form browsers expect
(raw uncompressed public point, PKCS8 private key) and signs the
short-lived ES256 tokens push services use to identify the sender.
"""

import base64
import time
from dataclasses import dataclass
from typing import Dict, Optional
from urllib.parse import urlsplit

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

TOKEN_TTL_SECONDS = 12 * 60 * 60
DEFAULT_SUBJECT = "mailto:admin@dataponto.app"


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


@dataclass(frozen=True)
class VapidKeys:
    """URL-safe base64 encoded VAPID key pair."""
    public_key: str
    private_key: str

    def to_dict(self) -> Dict[str, str]:
        return {"publicKey": self.public_key, "privateKey": self.private_key}


def generate_vapid_keys() -> VapidKeys:
    """Create a new P-256 key pair for web push."""
    private_key = ec.generate_private_key(ec.SECP256R1())

    raw_public = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    )
    pkcs8_private = private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )

    return VapidKeys(
        public_key=b64url_encode(raw_public),
        private_key=b64url_encode(pkcs8_private),
    )


class VapidSigner:
    """
    Builds the VAPID Authorization header for a push endpoint.

    Usage:
        signer = VapidSigner(public_key, private_key, "mailto:ops@example.com")
        headers.update(signer.headers_for(subscription.endpoint))
    """

    def __init__(self, public_key: str, private_key: str, subject: Optional[str] = None):
        self.public_key = public_key
        self.subject = subject or DEFAULT_SUBJECT
        self._private_key = serialization.load_der_private_key(
            b64url_decode(private_key),
            password=None,
        )

    def sign(self, endpoint: str, now: Optional[float] = None) -> str:
        """ES256 JWT scoped to the endpoint's origin."""
        if now is None:
            now = time.time()

        parts = urlsplit(endpoint)
        claims = {
            "aud": f"{parts.scheme}://{parts.netloc}",
            "exp": int(now) + TOKEN_TTL_SECONDS,
            "sub": self.subject,
        }
        return jwt.encode(claims, self._private_key, algorithm="ES256")

    def headers_for(self, endpoint: str) -> Dict[str, str]:
        token = self.sign(endpoint)
        return {"Authorization": f"vapid t={token}, k={self.public_key}"}
