"""
DATAPONTO FastAPI Backend

Entry point for the API server behind the React frontend: deadline
aggregation, push notification dispatch, the chat message log and the
websocket channel that carries in-app notices.

Architecture:
- FastAPI handles HTTP routing and request/response validation
- Pydantic schemas ensure type safety
- dataponto services hold all business logic
- Database provides persistence via SQLite or PostgreSQL

Run with:
    uvicorn backend.main:app --reload --port 8000

Or:
    python -m backend.main
"""

import logging
import sys
from pathlib import Path
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

# Add project root to path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from dataponto import __version__
from backend.routers import (
    deadlines_router,
    push_router,
    messages_router,
)
from backend.dependencies import get_database, get_config
from backend.websocket import websocket_endpoint, ws_manager

logger = logging.getLogger("dataponto")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Runs startup and shutdown tasks:
    - Startup: Configure logging, verify database connection
    - Shutdown: Close every open notification session
    """
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        db = get_database()
        config = get_config()
        logger.info("Database connected: %s", getattr(db, "db_path", "postgresql"))
        logger.info("Config loaded from: %s", config.config_dir)
    except FileNotFoundError as e:
        logger.error("%s", e)
        logger.error("Run 'python scripts/init_db.py' to create the database.")
        # Allow app to start but endpoints will fail gracefully

    yield

    logger.info("Shutting down...")
    await ws_manager.close_all()


# Create FastAPI app
app = FastAPI(
    title="DATAPONTO API",
    description="""
    Deadline tracking and notifications for a shared team workspace.

    ## Features

    - **Deadlines**: Projects, appointments and goals merged into one list with urgency tiers
    - **Push**: Web push fan-out to every registered browser except the sender's
    - **Messages**: Shared chat log; new messages raise notices for everyone else
    - **WebSocket**: Appointment reminders and message notices for signed-in viewers
    """,
    version=__version__,
    lifespan=lifespan,
)

# Configure CORS for frontend access
# In production, replace with specific origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",  # Vite dev server
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(deadlines_router)
app.include_router(push_router)
app.include_router(messages_router)


# ============================================================
# WEBSOCKET ENDPOINT
# ============================================================
# Each identified client gets a notification session: appointment
# reminders plus notices for messages posted by others.
# ============================================================

@app.websocket("/ws")
async def websocket_route(websocket: WebSocket):
    """
    WebSocket endpoint for notices and live updates.

    Protocol:
    - Client sends: { "type": "hello", "user_id": "...", "view": "/dashboard" }
    - Client sends: { "type": "view", "path": "/chat" }
    - Server sends: { "type": "notice", "title": "...", "description": "...", ... }

    Topics available:
    - messages: message_created events for the chat page
    """
    await websocket_endpoint(websocket)


@app.get("/")
async def root():
    """API root - returns basic info and available endpoints."""
    return {
        "name": "DATAPONTO API",
        "version": __version__,
        "docs": "/docs",
        "endpoints": {
            "deadlines": "/deadlines",
            "deadline_summary": "/deadlines/summary",
            "push_send": "/push/send",
            "push_subscriptions": "/push/subscriptions",
            "messages": "/messages",
            "websocket": "/ws",
        }
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    try:
        db = get_database()
        # Quick database check
        db.execute_one("SELECT 1")
        return {
            "status": "healthy",
            "database": "connected",
            "connections": ws_manager.get_connection_count(),
        }
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}


# Allow running directly with: python -m backend.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "backend.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
