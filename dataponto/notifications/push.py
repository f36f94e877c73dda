"""
Web push fan-out for DATAPONTO.

The dispatch service delivers one notification to every registered push
endpoint (optionally leaving out the sender's own devices). Deliveries are
isolated per recipient: an endpoint answering 404/410 is deleted from the
store, any other failure is recorded and the fan-out carries on.

Callers that only want to fire a notification use a PushClient:
- LocalPushClient calls the service in-process
- HttpPushClient posts to the dispatch endpoint with the anon key

Neither client ever raises; dispatch is best-effort for them.

Payloads are POSTed as plain JSON with VAPID headers only. Real browser push
services (FCM, Mozilla autopush, APNs web push) reject deliveries whose body
is not encrypted per RFC 8291 (aes128gcm), so pointing the service at them
needs pywebpush-style payload encryption added to _deliver.
"""

import asyncio
import json
import logging
import re
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from dataponto.core.config import Config
from dataponto.core.models import PushSubscription
from dataponto.notifications.errors import (
    DispatchStoreError,
    DispatchValidationError,
    NotificationError,
)
from dataponto.notifications.notices import MESSAGE, NOTIFICATION_TYPES, build_push_payload
from dataponto.notifications.vapid import VapidSigner

logger = logging.getLogger(__name__)

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

# Push services answer these for endpoints that will never accept again
GONE_STATUSES = (404, 410)


def is_valid_uuid(value: Any) -> bool:
    """True when value is a canonical UUID string."""
    return isinstance(value, str) and bool(UUID_PATTERN.match(value))


@dataclass(frozen=True)
class DispatchRequest:
    """A notification to fan out."""
    title: str
    body: str
    sender_id: str = ""
    type: str = MESSAGE

    @classmethod
    def from_dict(cls, data: Any) -> 'DispatchRequest':
        """
        Validate a JSON request body.

        Raises:
            DispatchValidationError: when the body is not an object or a
                field has the wrong type
        """
        if not isinstance(data, dict):
            raise DispatchValidationError("Request body must be a JSON object")

        title = data.get("title")
        body = data.get("body")
        sender_id = data.get("sender_id") or ""
        notification_type = data.get("type") or MESSAGE

        if not isinstance(title, str) or not title.strip():
            raise DispatchValidationError("title must be a non-empty string")
        if not isinstance(body, str):
            raise DispatchValidationError("body must be a string")
        if not isinstance(sender_id, str):
            raise DispatchValidationError("sender_id must be a string")
        if notification_type not in NOTIFICATION_TYPES:
            raise DispatchValidationError(
                f"type must be one of: {', '.join(NOTIFICATION_TYPES)}"
            )

        return cls(title=title, body=body, sender_id=sender_id, type=notification_type)


@dataclass
class DispatchResult:
    """Per-subscription outcome of one dispatch call."""
    results: List[str] = field(default_factory=list)
    message: Optional[str] = None
    sent: int = 0
    removed: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"results": self.results}
        if self.message:
            data["message"] = self.message
        return data


class SubscriptionRegistry:
    """Reads and writes rows of the push_subscriptions table."""

    def __init__(self, db):
        self.db = db

    def upsert(self, user_id: str, endpoint: str, p256dh: str, auth: str) -> PushSubscription:
        """Register an endpoint, refreshing its keys when (user, endpoint) exists."""
        existing = self.db.execute_one(
            "SELECT * FROM push_subscriptions WHERE user_id = ? AND endpoint = ?",
            (user_id, endpoint),
        )
        if existing:
            self.db.execute_write(
                "UPDATE push_subscriptions SET p256dh = ?, auth = ? WHERE id = ?",
                (p256dh, auth, existing["id"]),
            )
            subscription_id = existing["id"]
        else:
            subscription_id = str(uuid.uuid4())
            self.db.execute_write(
                "INSERT INTO push_subscriptions (id, user_id, endpoint, p256dh, auth) "
                "VALUES (?, ?, ?, ?, ?)",
                (subscription_id, user_id, endpoint, p256dh, auth),
            )

        row = self.db.execute_one(
            "SELECT * FROM push_subscriptions WHERE id = ?",
            (subscription_id,),
        )
        return PushSubscription.from_dict(dict(row))

    def remove(self, user_id: str, endpoint: str) -> bool:
        """Unregister one of the user's endpoints."""
        count = self.db.execute_write(
            "DELETE FROM push_subscriptions WHERE user_id = ? AND endpoint = ?",
            (user_id, endpoint),
        )
        return count > 0

    def delete(self, subscription_id: str) -> int:
        return self.db.execute_write(
            "DELETE FROM push_subscriptions WHERE id = ?",
            (subscription_id,),
        )

    def list_for_user(self, user_id: str) -> List[PushSubscription]:
        rows = self.db.execute(
            "SELECT * FROM push_subscriptions WHERE user_id = ? ORDER BY created_at ASC",
            (user_id,),
        )
        return [PushSubscription.from_dict(dict(r)) for r in rows]

    def list_targets(self, exclude_user_id: Optional[str] = None) -> List[PushSubscription]:
        """All subscriptions, optionally without one user's rows."""
        if exclude_user_id:
            rows = self.db.execute(
                "SELECT * FROM push_subscriptions WHERE user_id != ? ORDER BY created_at ASC",
                (exclude_user_id,),
            )
        else:
            rows = self.db.execute(
                "SELECT * FROM push_subscriptions ORDER BY created_at ASC"
            )
        return [PushSubscription.from_dict(dict(r)) for r in rows]


class PushDispatchService:
    """
    Server-side push fan-out.

    Usage:
        service = PushDispatchService(db, config)
        result = await service.dispatch({
            "title": "Nova mensagem",
            "body": "Oi!",
            "sender_id": user_id,
            "type": "message",
        })
    """

    def __init__(
        self,
        db,
        config: Optional[Config] = None,
        client: Optional[httpx.AsyncClient] = None,
        signer: Optional[VapidSigner] = None,
    ):
        """
        Initialize the dispatch service.

        Args:
            db: Database holding push_subscriptions
            config: Configuration (creates default if not provided)
            client: Shared HTTP client; a short-lived one is opened per
                dispatch when omitted
            signer: VAPID signer; built from VAPID_* environment values
                when omitted and both keys are set
        """
        self.config = config if config else Config()
        self.registry = SubscriptionRegistry(db)
        self._client = client

        self.ttl = int(self.config.get("push_ttl_seconds", "preferences", 86400))
        self.timeout = float(self.config.get("push_timeout_seconds", "preferences", 10))
        self.max_concurrency = max(
            1, int(self.config.get("push_max_concurrency", "preferences", 1))
        )

        if signer is None:
            public_key = self.config.env("vapid_public_key")
            private_key = self.config.env("vapid_private_key")
            if public_key and private_key:
                signer = VapidSigner(public_key, private_key, self.config.env("vapid_subject"))
        self.signer = signer

    @asynccontextmanager
    async def _http(self):
        if self._client is not None:
            yield self._client
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                yield client

    def _resolve_targets(self, request: DispatchRequest) -> List[PushSubscription]:
        # Only a well-formed user id narrows the audience; anything else
        # (empty for appointment reminders) reaches every subscription.
        exclude = request.sender_id if is_valid_uuid(request.sender_id) else None
        try:
            return self.registry.list_targets(exclude_user_id=exclude)
        except Exception as e:
            logger.error("Error fetching subscriptions: %s", e)
            raise DispatchStoreError("Failed to fetch subscriptions") from e

    async def dispatch(self, request) -> DispatchResult:
        """
        Deliver a notification to every target subscription.

        Args:
            request: DispatchRequest or its JSON dict form

        Returns:
            DispatchResult with one summary line per subscription

        Raises:
            DispatchValidationError: malformed request
            DispatchStoreError: subscriptions could not be read
        """
        if not isinstance(request, DispatchRequest):
            request = DispatchRequest.from_dict(request)

        subscriptions = self._resolve_targets(request)
        if not subscriptions:
            return DispatchResult(message="No subscriptions found")

        payload = json.dumps(build_push_payload(request.title, request.body, request.type))
        result = DispatchResult()

        async with self._http() as client:
            if self.max_concurrency == 1:
                outcomes = []
                for subscription in subscriptions:
                    outcomes.append(await self._deliver(client, subscription, payload))
            else:
                semaphore = asyncio.Semaphore(self.max_concurrency)

                async def bounded(subscription: PushSubscription):
                    async with semaphore:
                        return await self._deliver(client, subscription, payload)

                outcomes = await asyncio.gather(*(bounded(s) for s in subscriptions))

        for status, line in outcomes:
            result.results.append(line)
            if status == "sent":
                result.sent += 1
            elif status == "removed":
                result.removed += 1
            else:
                result.failed += 1

        logger.info(
            "Push dispatch '%s': %d sent, %d removed, %d failed",
            request.type, result.sent, result.removed, result.failed,
        )
        return result

    async def _deliver(self, client: httpx.AsyncClient, subscription: PushSubscription, payload: str):
        headers = {
            "Content-Type": "application/json",
            "TTL": str(self.ttl),
        }
        try:
            if self.signer is not None:
                headers.update(self.signer.headers_for(subscription.endpoint))
            response = await client.post(subscription.endpoint, content=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("Push to %s failed: %s", subscription.id, e)
            return "error", f"Error for {subscription.id}: {e}"
        except Exception as e:
            # A stored endpoint that cannot be signed or posted to only fails itself
            logger.error("Push to %s failed: %s", subscription.id, e, exc_info=True)
            return "error", f"Error for {subscription.id}: {e}"

        if response.status_code in GONE_STATUSES:
            return self._prune(subscription)

        if not response.is_success:
            logger.warning(
                "Push to %s rejected with %d", subscription.id, response.status_code
            )
            return "failed", f"Failed for {subscription.id}: {response.status_code} - {response.text}"

        return "sent", f"Sent to {subscription.id}"

    def _prune(self, subscription: PushSubscription):
        try:
            self.registry.delete(subscription.id)
        except Exception as e:
            logger.error("Could not remove expired subscription %s: %s", subscription.id, e)
            return "error", f"Error for {subscription.id}: {e}"

        logger.info("Removed expired subscription %s", subscription.id)
        return "removed", f"Removed expired subscription {subscription.id}"


class PushClient:
    """Fire-and-forget sender used by reminder pollers and message watchers."""

    async def send(self, title: str, body: str, sender_id: str, notification_type: str) -> None:
        raise NotImplementedError


class LocalPushClient(PushClient):
    """Calls a PushDispatchService in the same process."""

    def __init__(self, service: PushDispatchService):
        self.service = service

    async def send(self, title: str, body: str, sender_id: str, notification_type: str) -> None:
        request = DispatchRequest(
            title=title,
            body=body,
            sender_id=sender_id or "",
            type=notification_type,
        )
        try:
            await self.service.dispatch(request)
        except NotificationError as e:
            logger.error("Failed to send push notification: %s", e)
        except Exception:
            logger.error("Unexpected push dispatch failure", exc_info=True)


class HttpPushClient(PushClient):
    """Posts to the push dispatch endpoint with the public (anon) key."""

    def __init__(
        self,
        url: str,
        anon_key: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.url = url
        self.anon_key = anon_key
        self._client = client
        self.timeout = timeout

    async def send(self, title: str, body: str, sender_id: str, notification_type: str) -> None:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.anon_key}",
            "apikey": self.anon_key,
        }
        body_json = {
            "title": title,
            "body": body,
            "sender_id": sender_id or "",
            "type": notification_type,
        }
        try:
            if self._client is not None:
                response = await self._client.post(self.url, json=body_json, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.url, json=body_json, headers=headers)
        except httpx.HTTPError as e:
            logger.error("Failed to send push notification: %s", e)
            return
        except Exception:
            logger.error("Unexpected failure posting to %s", self.url, exc_info=True)
            return

        if not response.is_success:
            logger.warning(
                "Push dispatch endpoint answered %d: %s", response.status_code, response.text
            )
