"""Message models for the session history and WebSocket communication."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from gemchat.models.base import CamelModel, utc_now
from gemchat.utils.ids import new_id


class Sender(str, Enum):
    """Message author."""

    USER = "user"
    BOT = "bot"


class MessageState(str, Enum):
    """Lifecycle state of a bot message, derived from its flags."""

    PENDING = "pending"
    STREAMING = "streaming"
    COMPLETE = "complete"
    ERRORED = "errored"


class WebSource(CamelModel):
    """A cited web page taken from the backend's grounding metadata."""

    model_config = ConfigDict(frozen=True)

    uri: str
    title: str = ""

    @model_validator(mode="before")
    @classmethod
    def _default_title(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("title"):
            data = {**data, "title": data.get("uri", "")}
        return data


class Message(CamelModel):
    """One entry of a session's conversation."""

    id: str = Field(default_factory=new_id)
    sender: Sender
    text: str = ""
    timestamp: datetime = Field(default_factory=utc_now)
    is_loading: bool = False
    is_error: bool = False
    sources: list[WebSource] = Field(default_factory=list)

    @classmethod
    def from_user(cls, text: str) -> Message:
        return cls(sender=Sender.USER, text=text)

    @classmethod
    def from_bot(cls, text: str) -> Message:
        return cls(sender=Sender.BOT, text=text)

    @classmethod
    def placeholder(cls) -> Message:
        """Bot message anchoring the in-place updates of a pending reply."""
        return cls(sender=Sender.BOT, text="", is_loading=True)

    @property
    def is_user(self) -> bool:
        return self.sender == Sender.USER

    @property
    def is_bot(self) -> bool:
        return self.sender == Sender.BOT

    @property
    def state(self) -> MessageState:
        if self.is_loading:
            return MessageState.STREAMING if self.text else MessageState.PENDING
        if self.is_error:
            return MessageState.ERRORED
        return MessageState.COMPLETE


class MessageType(str, Enum):
    """WebSocket frame type discriminator."""

    SEND = "send"
    REGENERATE = "regenerate"
    CANCEL = "cancel"
    STATUS = "status"
    MESSAGE = "message"
    SESSION = "session"
    ERROR = "error"


class IncomingMessage(BaseModel):
    """Frame received from the client via WebSocket."""

    type: MessageType
    session_id: Optional[str] = None
    content: Optional[str] = None
    message_id: Optional[str] = None


class OutgoingMessage(BaseModel):
    """Frame sent to the client via WebSocket."""

    type: MessageType
    content: Optional[str] = None
    session_id: Optional[str] = None
    message: Optional[dict[str, Any]] = None
    session: Optional[dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=utc_now)
