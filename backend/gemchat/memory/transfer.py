"""JSON export and import of the whole session collection.

The export document is a JSON array of sessions using the same camelCase
shape as the stored state::

    [
        {
            "id": "1718000000000-1a2b3c4d",
            "title": "Hello",
            "messages": [{"id": "...", "sender": "user", "text": "Hello", ...}],
            "createdAt": "...",
            "lastUpdatedAt": "...",
            "systemInstruction": ""
        }
    ]
"""

from __future__ import annotations

import json
import logging
from typing import Any, Sequence

from pydantic import TypeAdapter, ValidationError

from gemchat.core.errors import ImportFormatError
from gemchat.models.sessions import ChatSession

logger = logging.getLogger(__name__)

_sessions_adapter = TypeAdapter(list[ChatSession])


def export_sessions(sessions: Sequence[ChatSession]) -> str:
    """Serialize the full collection to one JSON document."""
    return _sessions_adapter.dump_json(
        list(sessions), by_alias=True, indent=2
    ).decode("utf-8")


def _check_entry(index: int, entry: Any) -> None:
    if not isinstance(entry, dict):
        raise ImportFormatError(f"Invalid file format: entry {index} is not an object.")
    session_id = entry.get("id")
    if not isinstance(session_id, str) or not session_id:
        raise ImportFormatError(f"Invalid file format: entry {index} has no id.")
    title = entry.get("title")
    if not isinstance(title, str) or not title:
        raise ImportFormatError(
            f"Invalid file format: session {session_id!r} has no title."
        )
    if not isinstance(entry.get("messages"), list):
        raise ImportFormatError(
            f"Invalid file format: session {session_id!r} has no messages list."
        )


def parse_import(payload: str | bytes) -> list[ChatSession]:
    """Validate an export document and return its sessions.

    Raises:
        ImportFormatError: If the payload is not a JSON array of sessions
            with an id, a title and a messages list each.
    """
    try:
        data = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ImportFormatError(f"Invalid file format: not valid JSON ({exc}).") from exc

    if not isinstance(data, list):
        raise ImportFormatError("Invalid file format: expected a list of chats.")

    for index, entry in enumerate(data):
        _check_entry(index, entry)

    try:
        sessions = _sessions_adapter.validate_python(data)
    except ValidationError as exc:
        raise ImportFormatError(
            f"Invalid file format: {exc.error_count()} invalid field(s). "
            f"{exc.errors()[0]['msg']}"
        ) from exc

    # imported replies can never resume streaming
    return [
        session.model_copy(
            update={
                "messages": [
                    m.model_copy(update={"is_loading": False}) for m in session.messages
                ]
            }
        )
        for session in sessions
    ]
