"""
Push notification API endpoints.

Dispatch fans a notification out to every registered browser endpoint
(excluding the sender's own devices). Registration endpoints let the
browser store and remove its PushSubscription.
"""

from typing import Any
from fastapi import APIRouter, Body, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from backend.dependencies import get_config, get_push_service, get_subscription_registry
from backend.schemas import (
    ErrorResponse,
    PushSendResponse,
    SubscriptionCreate,
    SubscriptionDelete,
    SubscriptionListResponse,
    SubscriptionResponse,
    VapidPublicKeyResponse,
)
from dataponto.core.config import Config
from dataponto.core.models import PushSubscription
from dataponto.notifications import (
    DispatchStoreError,
    DispatchValidationError,
    PushDispatchService,
    SubscriptionRegistry,
)

router = APIRouter(prefix="/push", tags=["push"])


def _subscription_response(subscription: PushSubscription) -> SubscriptionResponse:
    return SubscriptionResponse(
        id=subscription.id,
        user_id=subscription.user_id,
        endpoint=subscription.endpoint,
        created_at=subscription.created_at.isoformat() if subscription.created_at else None,
    )


@router.post(
    "/send",
    response_model=PushSendResponse,
    response_model_exclude_none=True,
    responses={422: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def send_push(
    payload: Any = Body(...),
    service: PushDispatchService = Depends(get_push_service),
):
    """
    Send a push notification to all subscriptions except the sender's.

    Body: {"title": str, "body": str, "sender_id": str, "type": "message" | "appointment"}
    """
    try:
        result = await service.dispatch(payload)
    except DispatchValidationError as e:
        return JSONResponse(status_code=422, content={"error": e.message})
    except DispatchStoreError as e:
        return JSONResponse(status_code=500, content={"error": e.message})

    return result.to_dict()


@router.post("/subscriptions", response_model=SubscriptionResponse, status_code=201)
async def register_subscription(
    subscription: SubscriptionCreate,
    registry: SubscriptionRegistry = Depends(get_subscription_registry),
):
    """Store the browser's push endpoint for a user (idempotent per endpoint)."""
    stored = registry.upsert(
        subscription.user_id,
        subscription.endpoint,
        subscription.keys.p256dh,
        subscription.keys.auth,
    )
    return _subscription_response(stored)


@router.delete("/subscriptions")
async def unregister_subscription(
    subscription: SubscriptionDelete,
    registry: SubscriptionRegistry = Depends(get_subscription_registry),
):
    """Remove a user's push endpoint."""
    if not registry.remove(subscription.user_id, subscription.endpoint):
        raise HTTPException(status_code=404, detail="Subscription not found")
    return {"success": True, "message": "Subscription removed"}


@router.get("/subscriptions", response_model=SubscriptionListResponse)
async def list_subscriptions(
    user_id: str = Query(..., min_length=1, description="Owner of the subscriptions"),
    registry: SubscriptionRegistry = Depends(get_subscription_registry),
):
    """List the push endpoints registered for a user."""
    subscriptions = registry.list_for_user(user_id)
    return SubscriptionListResponse(
        subscriptions=[_subscription_response(s) for s in subscriptions],
        total=len(subscriptions),
    )


@router.get("/vapid-public-key", response_model=VapidPublicKeyResponse)
async def vapid_public_key(config: Config = Depends(get_config)):
    """Application server key the browser passes to pushManager.subscribe()."""
    public_key = config.env("vapid_public_key")
    if not public_key:
        raise HTTPException(status_code=404, detail="VAPID public key is not configured")
    return VapidPublicKeyResponse(public_key=public_key)
