"""Exception hierarchy for the chat core."""

from __future__ import annotations


class ChatError(Exception):
    """Base class for errors raised by the chat core."""


class BackendUnavailableError(ChatError):
    """The text-generation backend cannot be used (missing or invalid key)."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class SendInProgressError(ChatError):
    """Another exchange already holds the single sending slot."""

    def __init__(self) -> None:
        super().__init__("A response is already being generated. Please wait.")


class SessionNotFoundError(ChatError, KeyError):
    """No session with the requested id exists."""

    def __init__(self, session_id: str) -> None:
        super().__init__(session_id)
        self.session_id = session_id

    def __str__(self) -> str:
        return f"Chat session not found: {self.session_id}"


class ImportFormatError(ChatError, ValueError):
    """An import payload failed validation."""


class HistoryError(ChatError, ValueError):
    """Prior turns handed to the backend are not a valid conversation."""


class BackendError(ChatError):
    """The backend failed while producing a reply."""


class StreamClosedError(ChatError):
    """A stream was abandoned before it reached its end."""
