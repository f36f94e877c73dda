"""
In-process realtime change feed.

CS Concept: **Observer Pattern** - writers publish row events for a table,
and every active subscription for that (table, event) pair is called back.

Each subscribe() returns a Subscription handle. The owner must dispose()
it; once disposed no further callback runs for it, including callbacks
already scheduled but not yet started.

Callbacks run as separate tasks so a slow observer (profile lookup, push
fan-out) never delays the writer that published the event.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple, Union

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"


@dataclass(frozen=True)
class RowEvent:
    """A change to one row of a table."""
    table: str
    event: str
    new: Dict[str, Any]
    old: Optional[Dict[str, Any]] = None


EventCallback = Callable[[RowEvent], Union[None, Awaitable[None]]]


class Subscription:
    """Cancellable handle returned by ChangeFeed.subscribe()."""

    def __init__(
        self,
        feed: 'ChangeFeed',
        table: str,
        event: str,
        callback: EventCallback,
        on_closed: Optional[Callable[['Subscription'], None]] = None,
    ):
        self.feed = feed
        self.table = table
        self.event = event
        self.callback = callback
        self.on_closed = on_closed
        self._active = True
        self._pending: Set[asyncio.Task] = set()

    @property
    def active(self) -> bool:
        return self._active

    def dispose(self) -> None:
        """Stop receiving events. Safe to call more than once."""
        if not self._active:
            return
        self._active = False
        self.feed._remove(self)
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()

    def _close(self) -> None:
        """Dropped by the feed rather than by the owner."""
        if not self._active:
            return
        self.dispose()
        if self.on_closed is not None:
            self.on_closed(self)

    def __enter__(self) -> 'Subscription':
        return self

    def __exit__(self, *args) -> None:
        self.dispose()

    def _deliver(self, event: RowEvent) -> asyncio.Task:
        task = asyncio.create_task(self._run(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _run(self, event: RowEvent) -> None:
        if not self._active:
            return
        try:
            result = self.callback(event)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.error(
                "Realtime callback for %s %s failed", self.table, self.event, exc_info=True
            )


class ChangeFeed:
    """
    Pub/sub of table row events.

    Usage:
        feed = ChangeFeed()
        sub = feed.subscribe("messages", INSERT, on_message)
        feed.publish(RowEvent("messages", INSERT, new=row))
        sub.dispose()
    """

    def __init__(self):
        self._subscriptions: Dict[Tuple[str, str], List[Subscription]] = {}

    def subscribe(
        self,
        table: str,
        event: str,
        callback: EventCallback,
        on_closed: Optional[Callable[[Subscription], None]] = None,
    ) -> Subscription:
        """
        Register a callback for (table, event).

        Args:
            on_closed: Called if the feed drops the subscription (reset),
                so the owner can resubscribe
        """
        subscription = Subscription(self, table, event, callback, on_closed)
        self._subscriptions.setdefault((table, event), []).append(subscription)
        logger.debug("Subscribed to %s %s", table, event)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        key = (subscription.table, subscription.event)
        subscribers = self._subscriptions.get(key, [])
        if subscription in subscribers:
            subscribers.remove(subscription)

    def subscriber_count(self, table: str, event: str = INSERT) -> int:
        return len(self._subscriptions.get((table, event), []))

    def publish(self, event: RowEvent) -> List[asyncio.Task]:
        """
        Schedule every matching subscription's callback.

        Must be called from a running event loop.

        Returns:
            The scheduled callback tasks
        """
        subscribers = list(self._subscriptions.get((event.table, event.event), []))
        return [s._deliver(event) for s in subscribers if s.active]

    def reset(self) -> None:
        """
        Drop every subscription, as a lost channel would.

        Owners that passed on_closed are told so they can resubscribe.
        """
        dropped = [s for subscribers in self._subscriptions.values() for s in subscribers]
        self._subscriptions.clear()
        for subscription in dropped:
            subscription._close()
