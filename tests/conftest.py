"""
Shared fixtures for the DATAPONTO test suite.

Provides an in-memory entity store with the production schema and a
controllable config, so services can be tested without files on disk.
"""

import sqlite3
import sys
import threading
from datetime import datetime
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from dataponto.core.schema import SCHEMA_SQL


class InMemoryDatabase:
    """
    Minimal in-memory database for testing.

    Mimics the Database interface but uses :memory: SQLite and doesn't
    require file existence. Pollers and watchers query from worker
    threads, so the connection is shared across threads behind a lock.
    """

    def __init__(self):
        self.db_path = ":memory:"
        self._conn = sqlite3.connect(":memory:", check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self.fail_on = None  # substring of a query that should raise
        self._conn.executescript(SCHEMA_SQL)
        self._conn.commit()

    def _check(self, query):
        if self.fail_on and self.fail_on in query:
            raise sqlite3.OperationalError(f"simulated failure: {self.fail_on}")

    def execute(self, query, params=()):
        self._check(query)
        with self._lock:
            cursor = self._conn.cursor()
            cursor.execute(query, params)
            return [dict(row) for row in cursor.fetchall()]

    def execute_one(self, query, params=()):
        self._check(query)
        with self._lock:
            cursor = self._conn.cursor()
            cursor.execute(query, params)
            row = cursor.fetchone()
            return dict(row) if row else None

    def execute_write(self, query, params=()):
        self._check(query)
        with self._lock:
            cursor = self._conn.cursor()
            cursor.execute(query, params)
            self._conn.commit()
            return cursor.rowcount

    def execute_script(self, script):
        with self._lock:
            self._conn.executescript(script)
            self._conn.commit()

    def get_table_names(self):
        rows = self.execute("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name")
        return [row["name"] for row in rows]


class MockConfig:
    """Mock config for testing with controllable settings."""

    def __init__(self, settings=None, preferences=None, env=None):
        self.settings = {"shared_workspace": True}
        self.settings.update(settings or {})
        self.preferences = {
            "notifications_enabled": True,
            "reminder_interval_seconds": 60,
            "default_reminder_minutes": 30,
            "push_ttl_seconds": 86400,
            "push_timeout_seconds": 10,
            "push_max_concurrency": 1,
            "message_preview_length": 50,
        }
        self.preferences.update(preferences or {})
        self._env = env or {}
        self.config_dir = Path("/tmp")

    def get(self, key, section="settings", default=None):
        if section == "preferences":
            return self.preferences.get(key, default)
        return self.settings.get(key, default)

    def env(self, key, default=None):
        return self._env.get(key) or default

    def now(self):
        return datetime.now()


@pytest.fixture
def db():
    """Create an in-memory database for testing."""
    return InMemoryDatabase()


@pytest.fixture
def config():
    """Create a mock config for testing."""
    return MockConfig()


# Well-formed user ids
ALICE = "11111111-1111-4111-8111-111111111111"
BOB = "22222222-2222-4222-8222-222222222222"
CAROL = "33333333-3333-4333-8333-333333333333"


def add_project(db, id, name, due_date, status="executing", user_id=ALICE):
    db.execute_write(
        "INSERT INTO projects (id, name, status, due_date, user_id) VALUES (?, ?, ?, ?, ?)",
        (id, name, status, due_date, user_id),
    )


def add_appointment(db, id, title, appointment_date, start_time, reminder_minutes=None, user_id=ALICE):
    db.execute_write(
        "INSERT INTO appointments (id, title, appointment_date, start_time, reminder_minutes, user_id) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        (id, title, appointment_date, start_time, reminder_minutes, user_id),
    )


def add_goal(db, id, title, due_date, status="em_andamento", progress=0, created_by=ALICE):
    db.execute_write(
        "INSERT INTO goals (id, title, due_date, status, progress, created_by) VALUES (?, ?, ?, ?, ?, ?)",
        (id, title, due_date, status, progress, created_by),
    )


def add_profile(db, user_id, display_name):
    db.execute_write(
        "INSERT INTO profiles (id, user_id, display_name) VALUES (?, ?, ?)",
        (f"profile-{user_id}", user_id, display_name),
    )


def add_subscription(db, id, user_id, endpoint):
    db.execute_write(
        "INSERT INTO push_subscriptions (id, user_id, endpoint, p256dh, auth) VALUES (?, ?, ?, ?, ?)",
        (id, user_id, endpoint, "p256dh-key", "auth-key"),
    )
