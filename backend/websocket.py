"""
WebSocket server for in-app notices and live chat updates.

CS Concept: **Pub/Sub Pattern** - The server acts as a message broker.
Clients subscribe to topics (messages) and the server publishes events to
all subscribers when data changes. In addition, every identified client
gets its own NotificationSession whose notices are sent only to it.

Architecture:
┌─────────────┐     ┌─────────────┐     ┌──────────────────────┐
│  Client A   │────►│  WebSocket  │────►│ NotificationSession  │
│  (browser)  │◄────│   Manager   │◄────│ (reminders, watcher) │
└─────────────┘     └──────┬──────┘     └──────────┬───────────┘
                           │                       │
                    ┌──────▼──────┐         ┌──────▼──────┐
                    │   API       │────────►│ ChangeFeed  │
                    │   Routes    │ publish │             │
                    └─────────────┘         └─────────────┘
"""

from fastapi import WebSocket, WebSocketDisconnect
from typing import Dict, Optional, Set
import asyncio
import json
import logging
from datetime import datetime, timezone
from dataclasses import dataclass, field
from enum import Enum

from backend.dependencies import get_change_feed, get_config, get_database, get_push_client
from dataponto.notifications.notices import Notice
from dataponto.notifications.session import NotificationSession

logger = logging.getLogger(__name__)


class TopicType(str, Enum):
    """Available subscription topics"""
    MESSAGES = "messages"


@dataclass
class Connection:
    """Represents a WebSocket connection"""
    websocket: WebSocket
    topics: Set[str] = field(default_factory=set)
    session: Optional[NotificationSession] = None
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class WebSocketManager:
    """
    Manages WebSocket connections, topic broadcasting and per-connection
    notification sessions.

    Usage:
        manager = WebSocketManager()

        # In WebSocket endpoint
        conn_id = await manager.connect(websocket)
        await manager.start_session(conn_id, user_id, view="/dashboard")

        # When data changes (e.g., message created)
        await manager.broadcast_to_topic("messages", {
            "type": "message_created",
            "data": message_data
        })
    """

    def __init__(self):
        # Map of connection_id -> Connection
        self.connections: Dict[str, Connection] = {}
        # Map of topic -> set of connection_ids
        self.topic_subscribers: Dict[str, Set[str]] = {
            topic.value: set() for topic in TopicType
        }
        self._lock = asyncio.Lock()

    def _get_connection_id(self, websocket: WebSocket) -> str:
        """Generate unique ID for a connection"""
        return f"{id(websocket)}"

    async def connect(self, websocket: WebSocket) -> str:
        """
        Accept and register a new WebSocket connection.

        Returns:
            Connection ID
        """
        await websocket.accept()

        conn_id = self._get_connection_id(websocket)

        async with self._lock:
            self.connections[conn_id] = Connection(websocket=websocket)

        logger.info("Client connected: %s", conn_id)
        return conn_id

    async def disconnect(self, websocket: WebSocket):
        """Remove a connection, its subscriptions and its notification session"""
        conn_id = self._get_connection_id(websocket)

        async with self._lock:
            connection = self.connections.pop(conn_id, None)
            if connection is not None:
                for topic in connection.topics:
                    self.topic_subscribers[topic].discard(conn_id)

        if connection is not None:
            if connection.session is not None:
                await connection.session.close()
            logger.info("Client disconnected: %s", conn_id)

    async def start_session(self, conn_id: str, user_id: str, view: str = "/dashboard") -> bool:
        """
        Open the notification session for an identified client.

        A repeated hello replaces the previous session, which starts a
        fresh reminder state.
        """
        connection = self.connections.get(conn_id)
        if connection is None:
            return False

        if connection.session is not None:
            await connection.session.close()

        async def send_notice(notice: Notice):
            await self.send_to(conn_id, {"type": "notice", **notice.to_dict()})

        session = NotificationSession(
            get_database(),
            get_change_feed(),
            user_id,
            notify=send_notice,
            push=get_push_client(),
            config=get_config(),
            view=view,
        )
        connection.session = session
        return await session.start()

    def set_view(self, conn_id: str, path: str) -> None:
        connection = self.connections.get(conn_id)
        if connection is not None and connection.session is not None:
            connection.session.set_view(path)

    async def subscribe(self, websocket: WebSocket, topics: list[str]):
        """Subscribe a connection to topics"""
        conn_id = self._get_connection_id(websocket)

        async with self._lock:
            if conn_id not in self.connections:
                return

            for topic in topics:
                if topic in self.topic_subscribers:
                    self.topic_subscribers[topic].add(conn_id)
                    self.connections[conn_id].topics.add(topic)
                    logger.debug("%s subscribed to %s", conn_id, topic)

    async def unsubscribe(self, websocket: WebSocket, topics: list[str]):
        """Unsubscribe a connection from topics"""
        conn_id = self._get_connection_id(websocket)

        async with self._lock:
            if conn_id not in self.connections:
                return

            for topic in topics:
                if topic in self.topic_subscribers:
                    self.topic_subscribers[topic].discard(conn_id)
                    self.connections[conn_id].topics.discard(topic)

    async def send_to(self, conn_id: str, message: dict) -> bool:
        """Send a message to one connection"""
        connection = self.connections.get(conn_id)
        if connection is None:
            return False

        message["timestamp"] = datetime.now(timezone.utc).isoformat()
        try:
            await connection.websocket.send_text(json.dumps(message))
            return True
        except Exception as e:
            logger.warning("Failed to send to %s: %s", conn_id, e)
            return False

    async def broadcast_to_topic(self, topic: str, message: dict):
        """
        Send a message to all connections subscribed to a topic.

        Args:
            topic: The topic name (e.g., "messages")
            message: The message to send (will be JSON serialized)
        """
        if topic not in self.topic_subscribers:
            return

        message["timestamp"] = datetime.now(timezone.utc).isoformat()
        message_json = json.dumps(message)

        # Copy to avoid modification during iteration
        async with self._lock:
            subscriber_ids = list(self.topic_subscribers[topic])

        disconnected = []
        for conn_id in subscriber_ids:
            connection = self.connections.get(conn_id)
            if connection is None:
                continue
            try:
                await connection.websocket.send_text(message_json)
            except Exception as e:
                logger.warning("Failed to send to %s: %s", conn_id, e)
                disconnected.append(connection.websocket)

        for websocket in disconnected:
            await self.disconnect(websocket)

    async def close_all(self):
        """Close every notification session (application shutdown)"""
        for connection in list(self.connections.values()):
            if connection.session is not None:
                await connection.session.close()

    def get_connection_count(self) -> int:
        """Get number of active connections"""
        return len(self.connections)

    def get_topic_subscriber_count(self, topic: str) -> int:
        """Get number of subscribers for a topic"""
        return len(self.topic_subscribers.get(topic, set()))


# Global manager instance
ws_manager = WebSocketManager()


def _is_topic_list(value) -> bool:
    return isinstance(value, list) and all(isinstance(topic, str) for topic in value)


async def websocket_endpoint(websocket: WebSocket):
    """
    Main WebSocket endpoint handler.

    Protocol:
        Client sends: { "type": "hello", "user_id": "...", "view": "/dashboard" }
        Client sends: { "type": "view", "path": "/chat" }
        Client sends: { "type": "subscribe", "topics": ["messages"] }
        Client sends: { "type": "ping", "timestamp": 1234567890 }
        Server sends: { "type": "session", "armed": true, "timestamp": "..." }
        Server sends: { "type": "notice", "title": "...", "description": "...", ... }
        Server sends: { "type": "message_created", "data": {...}, "timestamp": "..." }
        Server sends: { "type": "pong", "timestamp": 1234567890, "serverTime": "..." }

    Clients are expected to reconnect and send hello again after a drop;
    each reconnect starts a new session.
    """
    conn_id = await ws_manager.connect(websocket)
    failed = False

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
                msg_type = message.get("type")

                if msg_type == "hello":
                    user_id = message.get("user_id")
                    if not user_id:
                        await websocket.send_text(json.dumps({
                            "type": "error",
                            "code": "MISSING_USER",
                            "message": "hello requires user_id",
                        }))
                        continue
                    armed = await ws_manager.start_session(
                        conn_id, user_id, view=message.get("view") or "/dashboard"
                    )
                    await ws_manager.send_to(conn_id, {"type": "session", "armed": armed})

                elif msg_type == "view":
                    ws_manager.set_view(conn_id, message.get("path") or "")

                elif msg_type in ("subscribe", "unsubscribe"):
                    topics = message.get("topics", [])
                    if not _is_topic_list(topics):
                        await websocket.send_text(json.dumps({
                            "type": "error",
                            "code": "INVALID_TOPICS",
                            "message": "topics must be a list of strings",
                        }))
                        continue
                    if msg_type == "subscribe":
                        await ws_manager.subscribe(websocket, topics)
                    else:
                        await ws_manager.unsubscribe(websocket, topics)

                elif msg_type == "ping":
                    await websocket.send_text(json.dumps({
                        "type": "pong",
                        "timestamp": message.get("timestamp"),
                        "serverTime": datetime.now(timezone.utc).isoformat(),
                    }))

                else:
                    await websocket.send_text(json.dumps({
                        "type": "error",
                        "code": "UNKNOWN_MESSAGE_TYPE",
                        "message": f"Unknown message type: {msg_type}",
                    }))

            except (json.JSONDecodeError, AttributeError):
                await websocket.send_text(json.dumps({
                    "type": "error",
                    "code": "INVALID_JSON",
                    "message": "Message must be a JSON object",
                }))

    except WebSocketDisconnect:
        pass
    except Exception:
        logger.error("WebSocket handler for %s failed", conn_id, exc_info=True)
        failed = True
    finally:
        # The session must be closed on every exit path
        await ws_manager.disconnect(websocket)

    if failed:
        await websocket.close(code=1011)


# ============================================================
# HELPER FUNCTIONS FOR API ROUTES
# ============================================================

async def notify_message_created(message: dict):
    """Call this after inserting a chat message"""
    await ws_manager.broadcast_to_topic("messages", {
        "type": "message_created",
        "data": message,
    })
