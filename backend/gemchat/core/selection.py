"""Active-session selection rules.

Pure functions: they take the current collection and active id and return
the next consistent pair. Callers persist the result.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from gemchat.models.sessions import ChatSession


@dataclass(frozen=True)
class SelectionState:
    """A session collection together with the id of its active member."""

    sessions: tuple[ChatSession, ...]
    active_id: Optional[str]


def reconcile_active_id(
    sessions: Sequence[ChatSession],
    active_id: Optional[str],
) -> Optional[str]:
    """Return an active id that is valid for ``sessions``.

    A valid id is kept; an invalid or missing one falls back to the first
    session; an empty collection always yields ``None``.
    """
    if not sessions:
        return None
    if active_id is not None and any(s.id == active_id for s in sessions):
        return active_id
    return sessions[0].id


def compute_after_deletion(
    sessions: Sequence[ChatSession],
    id_to_delete: str,
    active_id: Optional[str],
) -> SelectionState:
    """Remove ``id_to_delete`` and pick the session that becomes active.

    When the active session is deleted, the session that slides into its
    slot is selected, or the new last session if it was the last one.
    """
    original_index = next(
        (i for i, s in enumerate(sessions) if s.id == id_to_delete), -1
    )
    remaining = tuple(s for s in sessions if s.id != id_to_delete)

    if not remaining:
        return SelectionState(remaining, None)

    if active_id != id_to_delete:
        return SelectionState(remaining, reconcile_active_id(remaining, active_id))

    if original_index < 0:
        return SelectionState(remaining, remaining[0].id)
    if original_index < len(remaining):
        return SelectionState(remaining, remaining[original_index].id)
    return SelectionState(remaining, remaining[-1].id)


def compute_after_creation(
    sessions: Sequence[ChatSession],
    new_session: ChatSession,
) -> SelectionState:
    """Prepend ``new_session`` (newest first) and make it active."""
    return SelectionState((new_session, *sessions), new_session.id)


def compute_after_import(imported: Sequence[ChatSession]) -> SelectionState:
    """Replace the collection wholesale; the first imported session is active."""
    sessions = tuple(imported)
    return SelectionState(sessions, sessions[0].id if sessions else None)
