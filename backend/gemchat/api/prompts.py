"""Quick prompt management endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from gemchat.dependencies import get_session_manager
from gemchat.memory.manager import SessionManager
from gemchat.models.prompts import (
    QuickPrompt,
    QuickPromptListResponse,
    QuickPromptRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=QuickPromptListResponse)
async def list_prompts(
    manager: SessionManager = Depends(get_session_manager),
) -> QuickPromptListResponse:
    """Return all quick prompts, newest first."""
    prompts = manager.quick_prompts
    return QuickPromptListResponse(prompts=prompts, total=len(prompts))


@router.post("", response_model=QuickPrompt, status_code=201)
async def add_prompt(
    body: QuickPromptRequest,
    manager: SessionManager = Depends(get_session_manager),
) -> QuickPrompt:
    """Save a new quick prompt."""
    return manager.add_quick_prompt(body.title, body.text)


@router.put("/{prompt_id}", response_model=QuickPrompt)
async def update_prompt(
    prompt_id: str,
    body: QuickPromptRequest,
    manager: SessionManager = Depends(get_session_manager),
) -> QuickPrompt:
    """Edit the title and text of a quick prompt."""
    try:
        return manager.update_quick_prompt(prompt_id, body.title, body.text)
    except KeyError:
        raise HTTPException(status_code=404, detail="Quick prompt not found")


@router.delete("/{prompt_id}")
async def delete_prompt(
    prompt_id: str,
    manager: SessionManager = Depends(get_session_manager),
) -> dict[str, str]:
    """Delete a quick prompt."""
    if not manager.delete_quick_prompt(prompt_id):
        raise HTTPException(status_code=404, detail="Quick prompt not found")
    return {"status": "deleted", "promptId": prompt_id}
