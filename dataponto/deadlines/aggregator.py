"""
Deadline aggregation for DATAPONTO.

Collects projects, appointments and goals from the entity store and merges
them into a single date-ordered list of DeadlineItem objects, each tagged
with its source type and urgency tier.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Callable, Dict, List, Optional, Tuple

from dataponto.core.config import Config
from dataponto.core.models import Appointment, Goal, Project
from dataponto.deadlines.urgency import SOON_DAYS, Urgency, classify, days_until

logger = logging.getLogger(__name__)

SOURCE_TYPES = ("project", "appointment", "goal")

FILTERS = ("all", "overdue", "today", "urgent", "week") + SOURCE_TYPES

# Page a deadline links back to
SOURCE_ROUTES = {
    "project": "/projetos",
    "appointment": "/agenda",
    "goal": "/metas",
}


@dataclass(frozen=True)
class DeadlineItem:
    """One deadline, derived from a project, appointment or goal."""
    id: str
    title: str
    source_type: str
    date: date
    urgency: Urgency
    time: Optional[time] = None
    status: Optional[str] = None
    progress: Optional[int] = None

    @property
    def route(self) -> str:
        return SOURCE_ROUTES[self.source_type]

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "title": self.title,
            "source_type": self.source_type,
            "date": self.date.isoformat(),
            "time": self.time.strftime("%H:%M") if self.time else None,
            "urgency": self.urgency.value,
            "status": self.status,
            "progress": self.progress,
            "route": self.route,
        }


@dataclass(frozen=True)
class DeadlineSummary:
    """Counters shown above the deadline list."""
    overdue: int = 0
    today: int = 0
    urgent: int = 0
    total: int = 0


@dataclass(frozen=True)
class DeadlineList:
    """
    Result of one aggregation pass.

    Items are stored as a tuple so filtered views can never reorder or
    drop entries from the aggregated list.
    """
    items: Tuple[DeadlineItem, ...]
    generated_at: datetime
    failed_sources: Tuple[str, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    def filter(self, name: str = "all", now: Optional[datetime] = None) -> List[DeadlineItem]:
        """
        Project the aggregated list through a named filter.

        Args:
            name: all | overdue | today | urgent | week | project | appointment | goal
            now: Reference time for the 'week' window (defaults to generated_at)

        Returns:
            New list of matching items, in aggregated order

        Raises:
            ValueError: for an unknown filter name
        """
        if name not in FILTERS:
            raise ValueError(f"Unknown deadline filter: {name}")

        if now is None:
            now = self.generated_at

        if name == "all":
            return list(self.items)
        if name == "overdue":
            return [i for i in self.items if i.urgency is Urgency.OVERDUE]
        if name == "today":
            return [i for i in self.items if i.urgency is Urgency.TODAY]
        if name == "urgent":
            return [i for i in self.items if i.urgency in (Urgency.URGENT, Urgency.TODAY)]
        if name == "week":
            return [i for i in self.items if 0 <= days_until(i.date, now) <= SOON_DAYS]
        return [i for i in self.items if i.source_type == name]

    def summary(self) -> DeadlineSummary:
        return DeadlineSummary(
            overdue=sum(1 for i in self.items if i.urgency is Urgency.OVERDUE),
            today=sum(1 for i in self.items if i.urgency is Urgency.TODAY),
            urgent=sum(1 for i in self.items if i.urgency is Urgency.URGENT),
            total=len(self.items),
        )


class DeadlineAggregator:
    """
    Merges the three deadline sources into one urgency-tagged list.

    Each source is fetched independently; a failing source is logged,
    reported in DeadlineList.failed_sources and contributes nothing, while
    the remaining sources are still returned.
    """

    def __init__(self, db, config: Optional[Config] = None):
        """
        Initialize aggregator.

        Args:
            db: Database connection
            config: Configuration (creates default if not provided)
        """
        self.db = db
        self.config = config if config else Config()

    def _is_shared(self) -> bool:
        return bool(self.config.get("shared_workspace", "settings", True))

    def _owner_clause(self, column: str, viewer_id: Optional[str]) -> Tuple[str, Tuple]:
        """SQL fragment restricting rows to the viewer when the workspace is private."""
        if self._is_shared() or not viewer_id:
            return "", ()
        return f" AND {column} = ?", (viewer_id,)

    def fetch_projects(
        self,
        viewer_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> List[DeadlineItem]:
        """Open projects that have a due date."""
        if now is None:
            now = self.config.now()

        owner_sql, owner_params = self._owner_clause("user_id", viewer_id)
        rows = self.db.execute(
            "SELECT id, name, status, priority, due_date, responsible, user_id "
            "FROM projects WHERE due_date IS NOT NULL AND status != 'completed'"
            + owner_sql,
            owner_params,
        )

        items = []
        for row in rows:
            project = Project.from_dict(dict(row))
            if project.due_date is None:
                logger.warning("Skipping project %s with unreadable due date", project.id)
                continue
            items.append(DeadlineItem(
                id=project.id,
                title=project.name,
                source_type="project",
                date=project.due_date,
                urgency=classify(project.due_date, now),
                status=project.status,
            ))
        return items

    def fetch_appointments(
        self,
        viewer_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> List[DeadlineItem]:
        """Appointments from today onwards."""
        if now is None:
            now = self.config.now()

        owner_sql, owner_params = self._owner_clause("user_id", viewer_id)
        rows = self.db.execute(
            "SELECT id, title, appointment_date, start_time, reminder_minutes, user_id "
            "FROM appointments WHERE appointment_date >= ?"
            + owner_sql
            + " ORDER BY appointment_date ASC",
            (now.date().isoformat(),) + owner_params,
        )

        items = []
        for row in rows:
            appointment = Appointment.from_dict(dict(row))
            if appointment.appointment_date is None:
                logger.warning("Skipping appointment %s with unreadable date", appointment.id)
                continue
            items.append(DeadlineItem(
                id=appointment.id,
                title=appointment.title,
                source_type="appointment",
                date=appointment.appointment_date,
                time=appointment.start_time,
                urgency=classify(appointment.appointment_date, now),
            ))
        return items

    def fetch_goals(
        self,
        viewer_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> List[DeadlineItem]:
        """Goals that are not completed yet."""
        if now is None:
            now = self.config.now()

        owner_sql, owner_params = self._owner_clause("created_by", viewer_id)
        rows = self.db.execute(
            "SELECT id, title, due_date, status, progress, created_by "
            "FROM goals WHERE status != 'completed'"
            + owner_sql,
            owner_params,
        )

        items = []
        for row in rows:
            goal = Goal.from_dict(dict(row))
            if goal.due_date is None:
                logger.warning("Skipping goal %s with unreadable due date", goal.id)
                continue
            items.append(DeadlineItem(
                id=goal.id,
                title=goal.title,
                source_type="goal",
                date=goal.due_date,
                urgency=classify(goal.due_date, now),
                status=goal.status,
                progress=goal.progress,
            ))
        return items

    def aggregate(
        self,
        viewer_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> DeadlineList:
        """
        Aggregate all deadline sources.

        Main entry point. Sources are concatenated in the order projects,
        appointments, goals and then stably sorted by date, so items that
        share a date keep that fetch order.

        Args:
            viewer_id: Identity of the viewer (used when the workspace is private)
            now: Evaluation time (defaults to now in the configured timezone)

        Returns:
            DeadlineList with the merged items and any failed source names
        """
        if now is None:
            now = self.config.now()

        fetchers: List[Tuple[str, Callable]] = [
            ("project", self.fetch_projects),
            ("appointment", self.fetch_appointments),
            ("goal", self.fetch_goals),
        ]

        items: List[DeadlineItem] = []
        failed: List[str] = []
        for source, fetch in fetchers:
            try:
                items.extend(fetch(viewer_id, now))
            except Exception:
                logger.warning("Failed to fetch %s deadlines", source, exc_info=True)
                failed.append(source)

        items.sort(key=lambda item: item.date)

        return DeadlineList(
            items=tuple(items),
            generated_at=now,
            failed_sources=tuple(failed),
        )
