"""
Exceptions raised by the notification services.
"""

from typing import Any


class NotificationError(Exception):
    """Base class for notification failures."""
    def __init__(self, code: str, message: str, details: Any = None):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(f"{code}: {message}")


class DispatchValidationError(NotificationError):
    """Raised when a push dispatch request is malformed."""
    def __init__(self, message: str, details: Any = None):
        super().__init__("INVALID_REQUEST", message, details)


class DispatchStoreError(NotificationError):
    """Raised when push subscriptions cannot be read from the entity store."""
    def __init__(self, message: str, details: Any = None):
        super().__init__("STORE_UNAVAILABLE", message, details)
