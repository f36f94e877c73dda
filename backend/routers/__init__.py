"""
API routers for the DATAPONTO backend.

Each router handles a specific domain:
- deadlines: Aggregated deadline list and summary counters
- push: Push dispatch and subscription registration
- messages: Chat message log
"""

from .deadlines import router as deadlines_router
from .push import router as push_router
from .messages import router as messages_router

__all__ = [
    'deadlines_router',
    'push_router',
    'messages_router',
]
