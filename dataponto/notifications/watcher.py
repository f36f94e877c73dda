"""
Realtime chat message watcher.

Listens for inserts on the messages table and hands each new message from
someone else to a list of independent observers:

- ToastObserver shows an in-app notice, unless the viewer is on /chat
- PushObserver fans the message out as a push notification, leaving out
  the sender's own endpoints

Observers never see the viewer's own messages. One failing observer does
not stop the others.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Union

from dataponto.core.config import Config
from dataponto.core.models import Message
from dataponto.notifications.notices import MESSAGE, MESSAGE_NOTICE_MS, Notice, NoticeSink
from dataponto.notifications.push import PushClient
from dataponto.notifications.realtime import INSERT, ChangeFeed, RowEvent, Subscription

logger = logging.getLogger(__name__)

CHAT_VIEW = "/chat"
DEFAULT_SENDER_NAME = "Alguém"
PREVIEW_LENGTH = 50


def truncate_preview(content: str, length: int = PREVIEW_LENGTH) -> str:
    """Cut a message to length characters, marking the cut with '...'."""
    if len(content) > length:
        return content[:length] + "..."
    return content


@dataclass(frozen=True)
class NewMessageEvent:
    """A message from someone else, as seen by one viewer."""
    message: Message
    sender_name: str
    preview: str
    viewer_id: str
    current_view: Optional[str] = None

    @property
    def title(self) -> str:
        return f"💬 Nova mensagem de {self.sender_name}"


MessageObserver = Callable[[NewMessageEvent], Union[None, Awaitable[None]]]


class ToastObserver:
    """In-app notice for new messages while the viewer is elsewhere."""

    def __init__(self, notify: NoticeSink):
        self.notify = notify

    async def __call__(self, event: NewMessageEvent) -> None:
        if event.current_view == CHAT_VIEW:
            return
        result = self.notify(Notice(
            title=event.title,
            description=event.preview,
            kind=MESSAGE,
            duration_ms=MESSAGE_NOTICE_MS,
        ))
        if inspect.isawaitable(result):
            await result


class PushObserver:
    """Push fan-out for new messages, excluding the sender's devices."""

    def __init__(self, push: PushClient):
        self.push = push

    async def __call__(self, event: NewMessageEvent) -> None:
        await self.push.send(event.title, event.preview, event.message.sender_id, MESSAGE)


class MessageWatcher:
    """
    Watches the shared message log for one viewer.

    Usage:
        watcher = MessageWatcher(db, feed, user_id, [ToastObserver(sink), PushObserver(push)],
                                 current_view=lambda: session.view)
        watcher.watch()
        ...
        watcher.dispose()

    If the feed drops the subscription (channel lost) the watcher
    resubscribes at once unless it has been disposed.
    """

    def __init__(
        self,
        db,
        feed: ChangeFeed,
        viewer_id: str,
        observers: List[MessageObserver],
        current_view: Optional[Callable[[], Optional[str]]] = None,
        config: Optional[Config] = None,
    ):
        self.db = db
        self.feed = feed
        self.viewer_id = viewer_id
        self.observers = list(observers)
        self.current_view = current_view or (lambda: None)
        self.config = config if config else Config()
        self.preview_length = int(self.config.get(
            "message_preview_length", "preferences", PREVIEW_LENGTH
        ))

        self._subscription: Optional[Subscription] = None
        self._disposed = False

    @property
    def active(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def watch(self) -> 'MessageWatcher':
        """Subscribe to message inserts; returns self as the disposable handle."""
        if self._disposed:
            raise RuntimeError("MessageWatcher has been disposed")
        if not self.active:
            self._subscription = self.feed.subscribe(
                "messages", INSERT, self.handle, on_closed=self._on_channel_closed
            )
        return self

    def dispose(self) -> None:
        """Unsubscribe for good. Safe to call more than once."""
        self._disposed = True
        if self._subscription is not None:
            self._subscription.dispose()
            self._subscription = None

    def __enter__(self) -> 'MessageWatcher':
        return self.watch()

    def __exit__(self, *args) -> None:
        self.dispose()

    def _on_channel_closed(self, subscription: Subscription) -> None:
        if self._disposed:
            return
        logger.info("Message channel closed for %s, resubscribing", self.viewer_id)
        self._subscription = None
        self.watch()

    def resolve_sender_name(self, sender_id: str) -> str:
        """Display name from profiles, or a placeholder when unavailable."""
        try:
            row = self.db.execute_one(
                "SELECT display_name FROM profiles WHERE user_id = ?",
                (sender_id,),
            )
        except Exception as e:
            logger.warning("Profile lookup for %s failed: %s", sender_id, e)
            return DEFAULT_SENDER_NAME

        if row and row.get("display_name"):
            return row["display_name"]
        return DEFAULT_SENDER_NAME

    async def handle(self, event: RowEvent) -> Optional[NewMessageEvent]:
        """
        Process one inserted message row.

        Returns:
            The event passed to observers, or None when the message was skipped
        """
        message = Message.from_dict(event.new)
        if message.sender_id == self.viewer_id:
            return None

        sender_name = await asyncio.to_thread(self.resolve_sender_name, message.sender_id)
        if self._disposed:
            return None

        new_message = NewMessageEvent(
            message=message,
            sender_name=sender_name,
            preview=truncate_preview(message.content, self.preview_length),
            viewer_id=self.viewer_id,
            current_view=self.current_view(),
        )

        for observer in self.observers:
            try:
                result = observer(new_message)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.error("Message observer %r failed", observer, exc_info=True)

        return new_message
