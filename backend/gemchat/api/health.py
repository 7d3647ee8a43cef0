"""Health check endpoint for infrastructure monitoring."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends

from gemchat.agent.backend import GeminiBackend
from gemchat.config import Settings, get_settings
from gemchat.dependencies import get_backend, get_session_manager
from gemchat.memory.manager import SessionManager

logger = logging.getLogger(__name__)
router = APIRouter()


def _check_backend(backend: GeminiBackend) -> dict[str, Any]:
    """Report whether Gemini can be called and why not."""
    status = backend.availability()
    if status.available:
        return {"status": "healthy"}
    return {"status": "unhealthy", "error": status.reason}


def _check_storage(manager: SessionManager) -> dict[str, Any]:
    """Ping the key-value store and return status."""
    try:
        if manager.gateway.store.ping():
            return {"status": "healthy"}
        return {"status": "unhealthy", "error": "ping failed"}
    except Exception as exc:
        logger.warning("Storage health check failed: %s", exc)
        return {"status": "unhealthy", "error": str(exc)}


@router.get("")
async def health_check(
    backend: GeminiBackend = Depends(get_backend),
    manager: SessionManager = Depends(get_session_manager),
    config: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """Return aggregate health of the backend and storage."""
    services = {
        "gemini": _check_backend(backend),
        "storage": _check_storage(manager),
    }

    overall = (
        "healthy"
        if all(s["status"] == "healthy" for s in services.values())
        else "degraded"
    )

    return {
        "status": overall,
        "app": config.app_name,
        "environment": config.environment,
        "services": services,
    }
