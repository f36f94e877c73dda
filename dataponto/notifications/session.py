"""
Notification session for one connected viewer.

Bundles the reminder poller and the message watcher that a signed-in
client runs, and ties both to one start()/close() lifecycle. The backend
opens a session per websocket connection and closes it on disconnect.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from dataponto.core.config import Config
from dataponto.notifications.notices import NoticeSink
from dataponto.notifications.push import PushClient
from dataponto.notifications.realtime import ChangeFeed
from dataponto.notifications.reminders import ReminderPoller
from dataponto.notifications.watcher import MessageWatcher, PushObserver, ToastObserver

logger = logging.getLogger(__name__)


class NotificationSession:
    """
    Reminder polling plus message watching for one viewer.

    Usage:
        session = NotificationSession(db, feed, user_id, notify=send, push=push_client)
        await session.start()
        session.set_view("/chat")
        await session.close()
    """

    def __init__(
        self,
        db,
        feed: ChangeFeed,
        user_id: str,
        notify: NoticeSink,
        push: Optional[PushClient] = None,
        config: Optional[Config] = None,
        view: str = "/dashboard",
        clock: Optional[Callable[[], datetime]] = None,
        interval: Optional[float] = None,
    ):
        self.user_id = user_id
        self.config = config if config else Config()
        self.view = view
        self._started = False

        self.poller = ReminderPoller(
            db,
            user_id,
            notify=notify,
            push=push,
            config=self.config,
            clock=clock,
            interval=interval,
        )

        observers = [ToastObserver(notify)]
        if push is not None:
            observers.append(PushObserver(push))
        self.watcher = MessageWatcher(
            db,
            feed,
            user_id,
            observers,
            current_view=lambda: self.view,
            config=self.config,
        )

    @property
    def started(self) -> bool:
        return self._started

    def set_view(self, path: str) -> None:
        """Record the page the viewer is looking at."""
        self.view = path

    async def start(self) -> bool:
        """
        Arm reminders and start watching messages.

        Returns:
            False when notifications are disabled or there is no user
        """
        if self._started:
            return True
        if not self.user_id or not self.config.get("notifications_enabled", "preferences", True):
            return False

        await self.poller.arm()
        self.watcher.watch()
        self._started = True
        logger.info("Notification session started for %s", self.user_id)
        return True

    async def close(self) -> None:
        """Stop both loops; nothing is delivered after this returns."""
        self.watcher.dispose()
        await self.poller.disarm()
        if self._started:
            logger.info("Notification session closed for %s", self.user_id)
        self._started = False
