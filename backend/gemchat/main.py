"""FastAPI application entry point with lifespan management."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gemchat.api.chat import websocket_chat
from gemchat.api.router import api_router
from gemchat.config import settings
from gemchat.dependencies import get_backend, get_session_manager

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    logger.info("Starting %s backend...", settings.app_name)

    # A first chat is only synthesized when it can actually be used
    status = get_backend().availability()
    if not status.available:
        logger.warning("Gemini backend unavailable: %s", status.reason)

    manager = get_session_manager()
    manager.load(create_if_empty=status.available)
    logger.info("Session manager loaded successfully")

    yield

    manager.gateway.store.close()
    logger.info("%s backend shut down cleanly", settings.app_name)


app = FastAPI(
    title="Gem Chat API",
    description="Multi-session chat with streamed, web-grounded Gemini replies",
    version="0.1.0",
    debug=settings.debug,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.frontend_url,
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount API routes
app.include_router(api_router, prefix="/api")

# Mount WebSocket endpoint (outside /api prefix to match frontend expectations)
app.websocket("/ws/chat")(websocket_chat)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
