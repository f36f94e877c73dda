"""
Core module for DATAPONTO
Contains database, configuration, schema and model definitions
"""

from .config import Config
from .database import Database, SQLiteDatabase, PostgreSQLDatabase, get_database
from .models import Project, Appointment, Goal, Message, Profile, PushSubscription
from .schema import init_schema

__all__ = [
    'Config',
    'Database',
    'SQLiteDatabase',
    'PostgreSQLDatabase',
    'get_database',
    'init_schema',
    'Project',
    'Appointment',
    'Goal',
    'Message',
    'Profile',
    'PushSubscription',
]
