"""
Serverless Function Entry Point

Exposes push dispatch as a standalone serverless function. POST / takes
{"title", "body", "sender_id", "type"} and fans the notification out with
the service key, so browsers only ever hold the public (anon) key. The
deadline and push routers are mounted as well for deployments that run
the whole API this way.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Any

# Ensure project root is in path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

# Set default to use PostgreSQL in production
if 'DATABASE_URL' in os.environ and 'USE_SQLITE' not in os.environ:
    os.environ['USE_SQLITE'] = '0'

from fastapi import Body, Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from mangum import Mangum

from dataponto import __version__
from backend.dependencies import get_push_service
from backend.routers import deadlines_router, push_router
from dataponto.notifications import (
    DispatchStoreError,
    DispatchValidationError,
    PushDispatchService,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

# Create a lightweight app for serverless
app = FastAPI(
    title="DATAPONTO Push",
    description="Web push dispatch for DATAPONTO",
    version=__version__,
)

# CORS for frontend; the browser calls this function directly
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["POST", "GET", "OPTIONS"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)

# Register routers
app.include_router(deadlines_router)
app.include_router(push_router)


@app.post("/")
async def dispatch(
    payload: Any = Body(...),
    service: PushDispatchService = Depends(get_push_service),
):
    """Send a push notification to all subscriptions except the sender's."""
    try:
        result = await service.dispatch(payload)
    except DispatchValidationError as e:
        return JSONResponse(status_code=422, content={"error": e.message})
    except DispatchStoreError as e:
        return JSONResponse(status_code=500, content={"error": e.message})
    return result.to_dict()


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "healthy", "service": "dataponto-push"}


# Mangum adapter for AWS Lambda/Vercel
handler = Mangum(app, lifespan="off")
