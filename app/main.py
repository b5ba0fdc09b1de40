"""
ResearchHub FastAPI Application Entry Point.

Run with: uvicorn app.main:app --reload
"""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.deps import get_chat_store, get_publisher, get_roster_sync
from app.api.routes import admin, applications, chat, projects
from app.config import get_settings, sanitize_error
from app.db.mongo import close_mongo_client
from app.db.session import AsyncSessionLocal
from app.services.errors import ChatError
from app.services.realtime import close_redis_client
from app.services.reconciliation import Reconciler
from app.services.s3 import ObjectStorageError

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup/shutdown."""
    # Startup
    try:
        await get_chat_store().ensure_indexes()
    except Exception:
        logger.exception("Could not create chat_rooms indexes")

    sweep = None
    if settings.reconcile_interval_seconds > 0:
        reconciler = Reconciler(AsyncSessionLocal, get_chat_store(), get_publisher())
        sweep = asyncio.create_task(reconciler.run_periodically(settings.reconcile_interval_seconds))
        logger.info("Chat reconciliation sweep every %ds", settings.reconcile_interval_seconds)

    yield

    # Shutdown
    if sweep is not None:
        sweep.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweep
    await get_roster_sync().drain()
    await close_redis_client()
    await close_mongo_client()


app = FastAPI(
    title=settings.app_name,
    description="Research project applications and project chat API",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    """Turn domain errors into {"detail": ...} responses."""
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(ObjectStorageError)
async def object_storage_error_handler(request: Request, exc: ObjectStorageError) -> JSONResponse:
    """Attachment storage failures become 502 responses."""
    logger.error("Object storage failure on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": sanitize_error(exc, generic_message="Could not store the attachment.")},
    )


# Include routers
app.include_router(projects.router)
app.include_router(applications.router)
app.include_router(chat.router)
app.include_router(admin.router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}
