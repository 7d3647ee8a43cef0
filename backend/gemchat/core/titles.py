"""Session title derivation."""

from __future__ import annotations

from typing import Sequence

from gemchat.models.messages import Message
from gemchat.models.sessions import DEFAULT_TITLE, ChatSession

TITLE_MAX_LENGTH = 30
ELLIPSIS = "..."


def derive_title(messages: Sequence[Message]) -> str:
    """Title taken from the first user message, truncated to 30 characters."""
    first_user = next((m for m in messages if m.is_user), None)
    if first_user is None:
        return DEFAULT_TITLE
    text = first_user.text
    if len(text) > TITLE_MAX_LENGTH:
        return text[:TITLE_MAX_LENGTH] + ELLIPSIS
    return text


def needs_derived_title(session: ChatSession) -> bool:
    """True while a session still carries the placeholder title.

    Sessions with a custom system instruction keep their title, and a
    title is only derived once an exchange exists (two or more messages).
    """
    return (
        session.title == DEFAULT_TITLE
        and not session.has_custom_instruction
        and len(session.messages) >= 2
        and any(m.is_user for m in session.messages)
    )
