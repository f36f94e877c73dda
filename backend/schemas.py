"""
Pydantic schemas for API request/response validation.

These schemas provide:
- Type safety for API inputs and outputs
- Automatic validation and error messages
- OpenAPI documentation generation

Design note: field names follow the entity store columns (snake_case) so
the browser client can pass rows through unchanged.
"""

from typing import List, Optional
from pydantic import BaseModel, Field


# =============================================================================
# Base Response Schemas
# =============================================================================

class ErrorResponse(BaseModel):
    """Error payload returned by the push endpoints."""
    error: str


# =============================================================================
# Deadline Schemas
# =============================================================================

class DeadlineItemResponse(BaseModel):
    """One aggregated deadline."""
    id: str
    title: str
    source_type: str  # project, appointment, goal
    date: str
    time: Optional[str] = None
    urgency: str  # overdue, today, urgent, soon, normal
    status: Optional[str] = None
    progress: Optional[int] = None
    route: str


class DeadlineSummaryResponse(BaseModel):
    """Counters shown above the deadline list."""
    overdue: int
    today: int
    urgent: int
    total: int


class DeadlineListResponse(BaseModel):
    """Filtered deadline list plus the unfiltered counters."""
    filter: str
    items: List[DeadlineItemResponse]
    summary: DeadlineSummaryResponse
    failed_sources: List[str] = []
    generated_at: str


# =============================================================================
# Push Schemas
# =============================================================================

class PushSendResponse(BaseModel):
    """Per-subscription outcome of a dispatch."""
    results: List[str]
    message: Optional[str] = None


class SubscriptionKeys(BaseModel):
    """Keys from PushSubscription.toJSON() in the browser."""
    p256dh: str = Field(..., min_length=1)
    auth: str = Field(..., min_length=1)


class SubscriptionCreate(BaseModel):
    """Request body for registering a push endpoint."""
    user_id: str = Field(..., min_length=1)
    endpoint: str = Field(..., min_length=1)
    keys: SubscriptionKeys


class SubscriptionDelete(BaseModel):
    """Request body for unregistering a push endpoint."""
    user_id: str = Field(..., min_length=1)
    endpoint: str = Field(..., min_length=1)


class SubscriptionResponse(BaseModel):
    """A registered push endpoint."""
    id: str
    user_id: str
    endpoint: str
    created_at: Optional[str] = None

    class Config:
        from_attributes = True


class SubscriptionListResponse(BaseModel):
    subscriptions: List[SubscriptionResponse]
    total: int


class VapidPublicKeyResponse(BaseModel):
    """Application server key for pushManager.subscribe()."""
    public_key: str


# =============================================================================
# Message Schemas
# =============================================================================

class MessageCreate(BaseModel):
    """Request body for posting a chat message."""
    sender_id: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1, max_length=5000)


class MessageResponse(BaseModel):
    """Chat message returned from API."""
    id: str
    sender_id: str
    content: str
    created_at: Optional[str] = None

    class Config:
        from_attributes = True


class MessageListResponse(BaseModel):
    """Response for listing messages."""
    messages: List[MessageResponse]
    total: int
