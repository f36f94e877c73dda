"""
In-app notices and push payload helpers.

A Notice is the transient toast shown inside the app; a push payload is
what service workers receive. Both carry a notification type that decides
which page a click opens.
"""

from dataclasses import dataclass, asdict
from typing import Any, Awaitable, Callable, Dict, Optional, Union

MESSAGE = "message"
APPOINTMENT = "appointment"
NOTIFICATION_TYPES = (MESSAGE, APPOINTMENT)

DEFAULT_URL = "/dashboard"

APPOINTMENT_NOTICE_MS = 10000
MESSAGE_NOTICE_MS = 8000
ERROR_NOTICE_MS = 5000


@dataclass(frozen=True)
class Notice:
    """Transient in-app notification."""
    title: str
    description: str
    # Notification type; None for notices tied to no page, such as errors
    kind: Optional[str] = MESSAGE
    duration_ms: int = MESSAGE_NOTICE_MS

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# Sync or async callable that shows a notice to the viewer
NoticeSink = Callable[[Notice], Union[None, Awaitable[None]]]


def notification_url(notification_type: Optional[str]) -> str:
    """
    Page a notification click should open.

    Messages open the chat, anything else with a type opens the agenda,
    and untyped notifications fall back to the dashboard.
    """
    if not notification_type:
        return DEFAULT_URL
    if notification_type == MESSAGE:
        return "/chat"
    return "/agenda"


def build_push_payload(title: str, body: str, notification_type: Optional[str]) -> Dict[str, Any]:
    """JSON payload delivered to every push endpoint."""
    return {
        "title": title,
        "body": body,
        "type": notification_type or MESSAGE,
    }
