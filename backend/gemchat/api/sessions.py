"""Session management endpoints."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from gemchat.agent.backend import GeminiBackend
from gemchat.core.errors import ImportFormatError, SessionNotFoundError
from gemchat.dependencies import get_backend, get_session_manager
from gemchat.memory.manager import SessionManager
from gemchat.models.messages import Message
from gemchat.models.sessions import (
    ChatSession,
    RenameRequest,
    SelectRequest,
    SessionListResponse,
    SessionSummary,
    SystemInstructionRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def _list_response(manager: SessionManager) -> SessionListResponse:
    sessions = manager.sessions
    return SessionListResponse(
        sessions=[SessionSummary.from_session(s) for s in sessions],
        active_session_id=manager.active_id,
        total=len(sessions),
    )


def _get_or_404(manager: SessionManager, session_id: str) -> ChatSession:
    try:
        return manager.get(session_id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.get("", response_model=SessionListResponse)
async def list_sessions(
    manager: SessionManager = Depends(get_session_manager),
) -> SessionListResponse:
    """Return all chat sessions, newest first, with the active id."""
    return _list_response(manager)


@router.post("", response_model=ChatSession, status_code=201)
async def create_session(
    manager: SessionManager = Depends(get_session_manager),
    backend: GeminiBackend = Depends(get_backend),
) -> ChatSession:
    """Start a new chat and make it active."""
    status = backend.availability()
    if not status.available:
        raise HTTPException(status_code=503, detail=status.reason)
    return manager.create_session()


@router.get("/active", response_model=Optional[ChatSession])
async def get_active_session(
    manager: SessionManager = Depends(get_session_manager),
) -> Optional[ChatSession]:
    """Return the active chat, or null when there are no chats."""
    return manager.active_session


@router.put("/active", response_model=ChatSession)
async def select_session(
    body: SelectRequest,
    manager: SessionManager = Depends(get_session_manager),
) -> ChatSession:
    """Make another chat the active one."""
    try:
        return manager.select(body.session_id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.get("/export")
async def export_sessions(
    manager: SessionManager = Depends(get_session_manager),
) -> Response:
    """Download every chat as one JSON document."""
    if not manager.sessions:
        raise HTTPException(status_code=400, detail="No chats to export.")
    filename = f"chat_backup_{datetime.now(timezone.utc).date().isoformat()}.json"
    return Response(
        content=manager.export_json(),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/import", response_model=SessionListResponse)
async def import_sessions(
    request: Request,
    manager: SessionManager = Depends(get_session_manager),
) -> SessionListResponse:
    """Replace all chats with the uploaded export document."""
    payload = await request.body()
    try:
        manager.import_json(payload)
    except ImportFormatError as exc:
        logger.warning("Import rejected: %s", exc)
        raise HTTPException(status_code=400, detail=f"Import failed: {exc}")
    return _list_response(manager)


@router.get("/{session_id}", response_model=ChatSession)
async def get_session(
    session_id: str,
    manager: SessionManager = Depends(get_session_manager),
) -> ChatSession:
    """Return one chat with its full message history."""
    return _get_or_404(manager, session_id)


@router.patch("/{session_id}", response_model=ChatSession)
async def rename_session(
    session_id: str,
    body: RenameRequest,
    manager: SessionManager = Depends(get_session_manager),
) -> ChatSession:
    """Rename a chat; a blank title becomes "Untitled Chat"."""
    _get_or_404(manager, session_id)
    return manager.rename(session_id, body.title)


@router.put("/{session_id}/system-instruction", response_model=ChatSession)
async def set_system_instruction(
    session_id: str,
    body: SystemInstructionRequest,
    manager: SessionManager = Depends(get_session_manager),
) -> ChatSession:
    """Set custom instructions for one chat; empty restores the default."""
    _get_or_404(manager, session_id)
    return manager.set_system_instruction(session_id, body.system_instruction)


@router.get("/{session_id}/search", response_model=list[Message])
async def search_session(
    session_id: str,
    q: str = "",
    manager: SessionManager = Depends(get_session_manager),
) -> list[Message]:
    """Return the messages of a chat containing ``q``."""
    _get_or_404(manager, session_id)
    return manager.search_messages(session_id, q)


@router.delete("/{session_id}")
async def delete_session(
    session_id: str,
    manager: SessionManager = Depends(get_session_manager),
) -> dict[str, Any]:
    """Delete a chat and its history."""
    _get_or_404(manager, session_id)
    state = manager.delete(session_id)
    return {
        "status": "deleted",
        "sessionId": session_id,
        "activeSessionId": state.active_id,
    }
