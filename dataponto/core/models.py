"""
Data models for DATAPONTO
Defines the source entities read by the deadline and notification services
"""

from dataclasses import dataclass, asdict
from datetime import date, datetime, time
from typing import Optional, Dict, Any

from dateutil import parser as date_parser


def parse_date(value: Any) -> Optional[date]:
    """Parse a calendar date from a database value (str, date or datetime)"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date_parser.isoparse(str(value)).date()
    except (ValueError, TypeError):
        return None


def parse_time(value: Any) -> Optional[time]:
    """Parse a clock time ('HH:MM' or 'HH:MM:SS') from a database value"""
    if value is None or value == "":
        return None
    if isinstance(value, time):
        return value
    try:
        return date_parser.parse(str(value)).time()
    except (ValueError, TypeError, OverflowError):
        return None


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse a timestamp from a database value"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return date_parser.parse(str(value))
    except (ValueError, TypeError, OverflowError):
        return None


@dataclass
class Project:
    """Kanban project; only projects with a due date become deadlines"""
    id: str = ""
    name: str = ""
    status: str = "idea"  # 'idea', 'planning', 'executing', 'review', 'completed'
    priority: str = "medium"  # 'low', 'medium', 'high', 'urgent'
    due_date: Optional[date] = None
    responsible: Optional[str] = None
    user_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Project':
        """Create Project from database row dictionary"""
        return cls(
            id=str(data.get('id', '')),
            name=data.get('name', ''),
            status=data.get('status', 'idea'),
            priority=data.get('priority', 'medium'),
            due_date=parse_date(data.get('due_date')),
            responsible=data.get('responsible'),
            user_id=data.get('user_id'),
        )


@dataclass
class Appointment:
    """Agenda appointment"""
    id: str = ""
    title: str = ""
    appointment_date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    reminder_minutes: Optional[int] = None
    user_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Appointment':
        """Create Appointment from database row dictionary"""
        reminder = data.get('reminder_minutes')
        return cls(
            id=str(data.get('id', '')),
            title=data.get('title', ''),
            appointment_date=parse_date(data.get('appointment_date')),
            start_time=parse_time(data.get('start_time')),
            end_time=parse_time(data.get('end_time')),
            reminder_minutes=int(reminder) if reminder is not None else None,
            user_id=data.get('user_id'),
        )

    def starts_at(self) -> Optional[datetime]:
        """Naive local datetime the appointment starts at"""
        if self.appointment_date is None or self.start_time is None:
            return None
        return datetime.combine(self.appointment_date, self.start_time)


@dataclass
class Goal:
    """Goal with a due date and progress percentage"""
    id: str = ""
    title: str = ""
    due_date: Optional[date] = None
    status: str = "nao_iniciada"
    progress: int = 0
    created_by: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Goal':
        """Create Goal from database row dictionary"""
        return cls(
            id=str(data.get('id', '')),
            title=data.get('title', ''),
            due_date=parse_date(data.get('due_date')),
            status=data.get('status', 'nao_iniciada'),
            progress=int(data.get('progress') or 0),
            created_by=data.get('created_by'),
        )


@dataclass
class Message:
    """Chat message on the shared message log"""
    id: str = ""
    sender_id: str = ""
    content: str = ""
    created_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Message':
        """Create Message from database row dictionary"""
        return cls(
            id=str(data.get('id', '')),
            sender_id=str(data.get('sender_id', '')),
            content=data.get('content') or '',
            created_at=parse_datetime(data.get('created_at')),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['created_at'] = self.created_at.isoformat() if self.created_at else None
        return data


@dataclass
class Profile:
    """User profile, used for display names"""
    user_id: str = ""
    display_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Profile':
        return cls(
            user_id=str(data.get('user_id', '')),
            display_name=data.get('display_name'),
        )


@dataclass
class PushSubscription:
    """A registered web push endpoint for one user"""
    id: str = ""
    user_id: str = ""
    endpoint: str = ""
    p256dh: str = ""
    auth: str = ""
    created_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PushSubscription':
        """Create PushSubscription from database row dictionary"""
        return cls(
            id=str(data.get('id', '')),
            user_id=str(data.get('user_id', '')),
            endpoint=data.get('endpoint', ''),
            p256dh=data.get('p256dh', ''),
            auth=data.get('auth', ''),
            created_at=parse_datetime(data.get('created_at')),
        )
