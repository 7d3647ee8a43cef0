"""Session models for conversation management."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from gemchat.models.base import CamelModel, utc_now
from gemchat.models.messages import Message
from gemchat.utils.ids import new_id

DEFAULT_TITLE = "New Chat"
UNTITLED_TITLE = "Untitled Chat"


class ChatSession(CamelModel):
    """One persisted conversation thread."""

    id: str = Field(default_factory=new_id)
    title: str = DEFAULT_TITLE
    messages: list[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    last_updated_at: datetime = Field(default_factory=utc_now)
    system_instruction: str = ""

    def index_of(self, message_id: str) -> int:
        """Position of ``message_id`` in the conversation, or -1."""
        for index, message in enumerate(self.messages):
            if message.id == message_id:
                return index
        return -1

    @property
    def has_custom_instruction(self) -> bool:
        return bool(self.system_instruction.strip())


class SessionSummary(CamelModel):
    """Summary of a session for list views."""

    id: str
    title: str
    message_count: int = 0
    last_updated_at: datetime

    @classmethod
    def from_session(cls, session: ChatSession) -> SessionSummary:
        return cls(
            id=session.id,
            title=session.title,
            message_count=len(session.messages),
            last_updated_at=session.last_updated_at,
        )


class SessionListResponse(CamelModel):
    """Response for listing sessions."""

    sessions: list[SessionSummary]
    active_session_id: Optional[str] = None
    total: int


class RenameRequest(CamelModel):
    title: str


class SelectRequest(CamelModel):
    session_id: str


class SystemInstructionRequest(CamelModel):
    system_instruction: str = ""
