"""
Dependency injection for FastAPI endpoints.

Provides singleton instances of Database, Config and the realtime
ChangeFeed, plus per-request service objects built on top of them.

Pattern: **Dependency Injection** - FastAPI's Depends() mechanism
allows us to inject shared resources into route handlers without
global state, making the code testable (tests override these providers).
"""

from functools import lru_cache
import sys
from pathlib import Path

# Add project root to path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from dataponto.core.config import Config
from dataponto.core.database import Database, get_database as open_database
from dataponto.deadlines.aggregator import DeadlineAggregator
from dataponto.notifications.push import (
    HttpPushClient,
    LocalPushClient,
    PushClient,
    PushDispatchService,
    SubscriptionRegistry,
)
from dataponto.notifications.realtime import ChangeFeed


@lru_cache()
def get_config() -> Config:
    """
    Get cached Config instance.

    lru_cache ensures we only create one Config instance
    for the lifetime of the application (singleton pattern).
    """
    return Config()


@lru_cache()
def get_database() -> Database:
    """
    Get cached Database instance.

    Each query opens its own connection, so one instance is shared.
    """
    return open_database()


@lru_cache()
def get_change_feed() -> ChangeFeed:
    """Process-wide realtime feed for table row events."""
    return ChangeFeed()


def get_deadline_aggregator() -> DeadlineAggregator:
    """Get DeadlineAggregator for the deadline list."""
    return DeadlineAggregator(get_database(), get_config())


def get_subscription_registry() -> SubscriptionRegistry:
    """Get SubscriptionRegistry for push endpoint registration."""
    return SubscriptionRegistry(get_database())


def get_push_service() -> PushDispatchService:
    """Get PushDispatchService for server-side fan-out."""
    return PushDispatchService(get_database(), get_config())


def get_push_client() -> PushClient:
    """
    Get the push client used by notification sessions.

    Posts to DATAPONTO_PUSH_URL when it is configured (dispatch deployed
    as a separate function), otherwise dispatches in-process.
    """
    config = get_config()
    push_url = config.env("push_url")
    if push_url:
        return HttpPushClient(
            push_url,
            config.env("anon_key", ""),
            timeout=float(config.get("push_timeout_seconds", "preferences", 10)),
        )
    return LocalPushClient(get_push_service())
