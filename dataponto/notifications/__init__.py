"""
Notification module for DATAPONTO.

Push fan-out, appointment reminder polling, realtime message watching and
the per-viewer session that ties them together.
"""

from .errors import NotificationError, DispatchValidationError, DispatchStoreError
from .notices import Notice, notification_url, build_push_payload
from .push import (
    DispatchRequest,
    DispatchResult,
    HttpPushClient,
    LocalPushClient,
    PushClient,
    PushDispatchService,
    SubscriptionRegistry,
    is_valid_uuid,
)
from .realtime import ChangeFeed, RowEvent, Subscription, INSERT
from .reminders import Reminder, ReminderPoller, ReminderState
from .watcher import MessageWatcher, NewMessageEvent, PushObserver, ToastObserver, truncate_preview
from .session import NotificationSession
from .vapid import VapidKeys, VapidSigner, generate_vapid_keys

__all__ = [
    # Errors
    'NotificationError',
    'DispatchValidationError',
    'DispatchStoreError',
    # Notices
    'Notice',
    'notification_url',
    'build_push_payload',
    # Push
    'DispatchRequest',
    'DispatchResult',
    'HttpPushClient',
    'LocalPushClient',
    'PushClient',
    'PushDispatchService',
    'SubscriptionRegistry',
    'is_valid_uuid',
    # Realtime
    'ChangeFeed',
    'RowEvent',
    'Subscription',
    'INSERT',
    # Reminders
    'Reminder',
    'ReminderPoller',
    'ReminderState',
    # Messages
    'MessageWatcher',
    'NewMessageEvent',
    'PushObserver',
    'ToastObserver',
    'truncate_preview',
    # Session
    'NotificationSession',
    # VAPID
    'VapidKeys',
    'VapidSigner',
    'generate_vapid_keys',
]
