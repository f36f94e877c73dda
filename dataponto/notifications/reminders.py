"""
Appointment reminder polling.

A ReminderPoller is armed for one viewer session. While armed it checks
today's appointments once immediately and then every interval (60 s by
default). An appointment whose start is between 0 and its reminder lead
time away fires exactly once per armed session: an in-app notice plus a
push broadcast to every registered endpoint.

State machine:
    idle   -- arm() with a user -->  armed
    armed  -- disarm()          -->  idle   (timer cancelled, no more notices)

Appointments whose window was missed (start already passed) are never
notified after the fact.
"""

import asyncio
import inspect
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Set

from dataponto.core.config import Config
from dataponto.core.models import Appointment
from dataponto.notifications.notices import (
    APPOINTMENT,
    APPOINTMENT_NOTICE_MS,
    ERROR_NOTICE_MS,
    Notice,
    NoticeSink,
)
from dataponto.notifications.push import PushClient

logger = logging.getLogger(__name__)

REMINDER_TITLE = "📅 Compromisso chegando!"
DEFAULT_INTERVAL_SECONDS = 60
DEFAULT_REMINDER_MINUTES = 30


def format_starts_in(diff_minutes: int) -> str:
    """Portuguese 'starts ...' suffix for a reminder."""
    if diff_minutes == 0:
        return "agora!"
    elif diff_minutes == 1:
        return "em 1 minuto!"
    return f"em {diff_minutes} minutos!"


@dataclass(frozen=True)
class Reminder:
    """A reminder that fired during an evaluation."""
    appointment_id: str
    title: str
    diff_minutes: int

    @property
    def description(self) -> str:
        return f'"{self.title}" começa {format_starts_in(self.diff_minutes)}'


class ReminderState:
    """
    Appointment ids already notified in one armed session.

    Lives only in memory and is replaced on every arm().
    """

    def __init__(self):
        self._notified: Set[str] = set()

    def __contains__(self, appointment_id: str) -> bool:
        return appointment_id in self._notified

    def __len__(self) -> int:
        return len(self._notified)

    def claim(self, appointment_id: str) -> bool:
        """
        Mark an appointment as notified.

        Returns False when it was already notified. Check and insert happen
        without yielding to the event loop, so overlapping evaluations
        cannot both claim the same id.
        """
        if appointment_id in self._notified:
            return False
        self._notified.add(appointment_id)
        return True


class ReminderPoller:
    """
    Periodic appointment reminder check for one viewer.

    Usage:
        poller = ReminderPoller(db, user_id, notify=send_notice, push=push_client)
        await poller.arm()
        ...
        await poller.disarm()
    """

    def __init__(
        self,
        db,
        user_id: Optional[str],
        notify: NoticeSink,
        push: Optional[PushClient] = None,
        config: Optional[Config] = None,
        clock: Optional[Callable[[], datetime]] = None,
        interval: Optional[float] = None,
    ):
        """
        Initialize the poller (idle until armed).

        Args:
            db: Database holding appointments
            user_id: Identified viewer; without one the poller never arms
            notify: Sink for in-app notices (sync or async callable)
            push: Push client for broadcasts (no push when omitted)
            config: Configuration (creates default if not provided)
            clock: Returns the current wall-clock time (defaults to the
                configured timezone)
            interval: Seconds between evaluations (defaults to config)
        """
        self.db = db
        self.user_id = user_id
        self.notify = notify
        self.push = push
        self.config = config if config else Config()
        self.clock = clock if clock else self.config.now

        if interval is None:
            interval = self.config.get(
                "reminder_interval_seconds", "preferences", DEFAULT_INTERVAL_SECONDS
            )
        self.interval = float(interval)
        self.default_lead = int(self.config.get(
            "default_reminder_minutes", "preferences", DEFAULT_REMINDER_MINUTES
        ))

        self._state: Optional[ReminderState] = None
        self._task: Optional[asyncio.Task] = None
        # Bumped on every arm/disarm; evaluations started under an older
        # epoch never emit.
        self._epoch = 0

    @property
    def state(self) -> Optional[ReminderState]:
        return self._state

    @property
    def armed(self) -> bool:
        return self._task is not None and not self._task.done()

    def _enabled(self) -> bool:
        return bool(self.user_id) and bool(
            self.config.get("notifications_enabled", "preferences", True)
        )

    async def arm(self, state: Optional[ReminderState] = None) -> bool:
        """
        Start polling with a fresh (or the given) notified set.

        Returns:
            True if the poller is now armed, False if it stays idle
        """
        if not self._enabled():
            logger.debug("Reminder poller idle: disabled or no user")
            return False

        if self.armed:
            await self.disarm()

        self._state = state if state is not None else ReminderState()
        self._epoch += 1
        self._task = asyncio.create_task(self._run(), name=f"reminders:{self.user_id}")
        logger.info("Reminder poller armed for %s", self.user_id)
        return True

    async def disarm(self) -> None:
        """Cancel the timer; no reminder fires after this returns."""
        self._epoch += 1
        task, self._task = self._task, None
        if task is None:
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Reminder poller disarmed for %s", self.user_id)

    async def _run(self) -> None:
        while True:
            try:
                await self.evaluate()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.error("Reminder evaluation failed", exc_info=True)
            await asyncio.sleep(self.interval)

    def fetch_due_appointments(self, now: datetime) -> List[Appointment]:
        """Today's appointments with a reminder that have not started yet."""
        rows = self.db.execute(
            "SELECT id, title, appointment_date, start_time, reminder_minutes, user_id "
            "FROM appointments "
            "WHERE appointment_date = ? "
            "AND reminder_minutes IS NOT NULL "
            "AND start_time >= ?",
            (now.date().isoformat(), now.strftime("%H:%M")),
        )
        return [Appointment.from_dict(dict(r)) for r in rows]

    async def evaluate(self) -> List[Reminder]:
        """
        Run one reminder check.

        Returns:
            Reminders fired by this evaluation
        """
        if not self.user_id:
            return []
        if self._state is None:
            self._state = ReminderState()

        epoch = self._epoch
        state = self._state
        now = self.clock()
        if now.tzinfo is not None:
            now = now.replace(tzinfo=None)

        try:
            appointments = await asyncio.to_thread(self.fetch_due_appointments, now)
        except Exception as e:
            logger.warning("Failed to fetch appointments for reminders: %s", e)
            if epoch == self._epoch:
                await self._emit(Notice(
                    title="Erro ao verificar lembretes",
                    description="Não foi possível carregar os compromissos de hoje.",
                    kind=None,
                    duration_ms=ERROR_NOTICE_MS,
                ))
            return []

        if epoch != self._epoch:
            return []

        fired: List[Reminder] = []
        for appointment in appointments:
            if appointment.id in state:
                continue

            starts_at = appointment.starts_at()
            if starts_at is None:
                continue

            diff_minutes = math.floor((starts_at - now).total_seconds() / 60)
            lead = appointment.reminder_minutes or self.default_lead

            if 0 <= diff_minutes <= lead and state.claim(appointment.id):
                fired.append(Reminder(
                    appointment_id=appointment.id,
                    title=appointment.title,
                    diff_minutes=diff_minutes,
                ))

        for reminder in fired:
            if epoch != self._epoch:
                break
            logger.info(
                "Reminder for appointment %s (%d min)",
                reminder.appointment_id, reminder.diff_minutes,
            )
            await self._emit(Notice(
                title=REMINDER_TITLE,
                description=reminder.description,
                kind=APPOINTMENT,
                duration_ms=APPOINTMENT_NOTICE_MS,
            ))
            if self.push is not None:
                # Empty sender: every registered endpoint gets the reminder
                await self.push.send(REMINDER_TITLE, reminder.description, "", APPOINTMENT)

        return fired

    async def _emit(self, notice: Notice) -> None:
        try:
            result = self.notify(notice)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.warning("Failed to deliver reminder notice", exc_info=True)
