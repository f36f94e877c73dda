"""
Chat message API endpoints.

Posting a message stores it, publishes the row on the realtime feed (which
drives every connected viewer's MessageWatcher) and broadcasts it to
websocket clients subscribed to the messages topic.
"""

import uuid
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, Query

from backend.dependencies import get_change_feed, get_database
from backend.schemas import MessageCreate, MessageListResponse, MessageResponse
from backend.websocket import notify_message_created
from dataponto.core.database import Database
from dataponto.core.models import Message
from dataponto.notifications import INSERT, ChangeFeed, RowEvent

router = APIRouter(prefix="/messages", tags=["messages"])


def _message_response(message: Message) -> MessageResponse:
    data = message.to_dict()
    return MessageResponse(**data)


@router.get("/", response_model=MessageListResponse)
async def list_messages(
    limit: int = Query(50, ge=1, le=500, description="Most recent N messages"),
    db: Database = Depends(get_database),
):
    """List the most recent chat messages, oldest first."""
    rows = db.execute(
        "SELECT * FROM messages ORDER BY created_at DESC LIMIT ?",
        (limit,),
    )
    messages = [Message.from_dict(dict(r)) for r in reversed(rows)]
    return MessageListResponse(
        messages=[_message_response(m) for m in messages],
        total=len(messages),
    )


@router.post("/", response_model=MessageResponse, status_code=201)
async def create_message(
    message: MessageCreate,
    db: Database = Depends(get_database),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """Post a chat message and notify everyone else."""
    row = {
        "id": str(uuid.uuid4()),
        "sender_id": message.sender_id,
        "content": message.content,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    db.execute_write(
        "INSERT INTO messages (id, sender_id, content, created_at) VALUES (?, ?, ?, ?)",
        (row["id"], row["sender_id"], row["content"], row["created_at"]),
    )

    feed.publish(RowEvent("messages", INSERT, new=row))
    await notify_message_created(dict(row))

    return _message_response(Message.from_dict(row))
