"""
Urgency classification for deadlines.

Maps a due date to one of five fixed tiers relative to the calendar day
of the evaluation time:

    overdue  - before today
    today    - today
    urgent   - 1 to 3 days ahead
    soon     - 4 to 7 days ahead
    normal   - later
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional, Union

from dataponto.core.models import parse_date


class Urgency(str, Enum):
    """Urgency tier of a deadline"""
    OVERDUE = "overdue"
    TODAY = "today"
    URGENT = "urgent"
    SOON = "soon"
    NORMAL = "normal"

    @property
    def rank(self) -> int:
        """Severity rank, higher is more urgent."""
        return URGENCY_RANK[self]


URGENCY_RANK = {
    Urgency.OVERDUE: 4,
    Urgency.TODAY: 3,
    Urgency.URGENT: 2,
    Urgency.SOON: 1,
    Urgency.NORMAL: 0,
}

URGENT_DAYS = 3
SOON_DAYS = 7

DateLike = Union[date, datetime, str]


def days_until(value: DateLike, now: Optional[datetime] = None) -> int:
    """
    Whole calendar days from today to the given date.

    Negative when the date is in the past.

    Raises:
        ValueError: if the value cannot be parsed as a date
    """
    if now is None:
        now = datetime.now()

    target = parse_date(value)
    if target is None:
        raise ValueError(f"Invalid date: {value!r}")

    today = now.date() if isinstance(now, datetime) else now
    return (target - today).days


def classify(value: DateLike, now: Optional[datetime] = None) -> Urgency:
    """
    Classify a due date into an urgency tier.

    Args:
        value: Due date (date, datetime or ISO string)
        now: Evaluation time (defaults to local now)

    Returns:
        Urgency tier
    """
    days = days_until(value, now)

    if days < 0:
        return Urgency.OVERDUE
    elif days == 0:
        return Urgency.TODAY
    elif days <= URGENT_DAYS:
        return Urgency.URGENT
    elif days <= SOON_DAYS:
        return Urgency.SOON
    else:
        return Urgency.NORMAL
