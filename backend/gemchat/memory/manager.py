"""Session manager owning the chat collection, active id and quick prompts.

Every structural change goes through ``_commit``, which restores the
active-id invariant and writes the new state through the persistence
gateway. Streaming updates skip the write and are flushed with ``save()``,
which runs the blocking store calls in a worker thread. Sessions and
messages are replaced copy-on-write, never mutated.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Optional, Sequence

from gemchat.agent.prompts import INTERRUPTED_MESSAGE, welcome_message
from gemchat.core.errors import SessionNotFoundError
from gemchat.core.selection import (
    SelectionState,
    compute_after_creation,
    compute_after_deletion,
    compute_after_import,
    reconcile_active_id,
)
from gemchat.core.titles import derive_title, needs_derived_title
from gemchat.memory.gateway import PersistenceGateway
from gemchat.memory.transfer import export_sessions, parse_import
from gemchat.models.base import utc_now
from gemchat.models.messages import Message
from gemchat.models.prompts import QuickPrompt
from gemchat.models.sessions import UNTITLED_TITLE, ChatSession

logger = logging.getLogger(__name__)


def _settle_stale(message: Message) -> Message:
    """Terminate a reply that was still loading when the state was saved."""
    if not message.is_loading:
        return message
    if message.text:
        return message.model_copy(update={"is_loading": False})
    return message.model_copy(
        update={"is_loading": False, "is_error": True, "text": INTERRUPTED_MESSAGE}
    )


class SessionManager:
    """Coordinates the in-memory chat state with durable storage.

    Lifecycle:
        manager = SessionManager(gateway)
        manager.load()          # call once at startup
        ...
    """

    def __init__(self, gateway: PersistenceGateway) -> None:
        self._gateway = gateway
        self._sessions: tuple[ChatSession, ...] = ()
        self._active_id: Optional[str] = None
        self._quick_prompts: tuple[QuickPrompt, ...] = ()
        self._write_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def load(self, *, create_if_empty: bool = True) -> None:
        """Read persisted state; start a fresh chat when there is none."""
        sessions = [
            s.model_copy(update={"messages": [_settle_stale(m) for m in s.messages]})
            for s in self._gateway.get_sessions()
        ]
        self._quick_prompts = tuple(self._gateway.get_quick_prompts())
        self._commit(SelectionState(tuple(sessions), self._gateway.get_active_id()))
        logger.info(
            "Loaded %d chat sessions and %d quick prompts",
            len(self._sessions),
            len(self._quick_prompts),
        )

        if not self._sessions and create_if_empty:
            self.create_session()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def gateway(self) -> PersistenceGateway:
        return self._gateway

    @property
    def sessions(self) -> list[ChatSession]:
        return list(self._sessions)

    @property
    def active_id(self) -> Optional[str]:
        return self._active_id

    @property
    def active_session(self) -> Optional[ChatSession]:
        if self._active_id is None:
            return None
        return self.find(self._active_id)

    def find(self, session_id: str) -> Optional[ChatSession]:
        return next((s for s in self._sessions if s.id == session_id), None)

    def get(self, session_id: str) -> ChatSession:
        session = self.find(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def search_messages(self, session_id: str, term: str) -> list[Message]:
        """Messages of a session whose text contains ``term`` (case-insensitive)."""
        session = self.get(session_id)
        needle = term.strip().lower()
        if not needle:
            return list(session.messages)
        return [m for m in session.messages if needle in m.text.lower()]

    # ------------------------------------------------------------------
    # Structural changes
    # ------------------------------------------------------------------

    def create_session(self) -> ChatSession:
        """Start a new chat with a welcome message and make it active."""
        now = utc_now()
        session = ChatSession(
            messages=[Message.from_bot(welcome_message())],
            created_at=now,
            last_updated_at=now,
        )
        self._commit(compute_after_creation(self._sessions, session))
        logger.info("Created chat session %s", session.id)
        return session

    def select(self, session_id: str) -> ChatSession:
        session = self.get(session_id)
        self._active_id = session.id
        self._gateway.set_active_id(session.id)
        return session

    def delete(self, session_id: str) -> SelectionState:
        """Remove a chat; the active id moves per the selection rules."""
        state = compute_after_deletion(self._sessions, session_id, self._active_id)
        self._commit(state)
        logger.info("Deleted chat session %s, active is now %s", session_id, state.active_id)
        return state

    def rename(self, session_id: str, title: str) -> ChatSession:
        return self.update_session(session_id, title=title.strip() or UNTITLED_TITLE)

    def set_system_instruction(self, session_id: str, instruction: str) -> ChatSession:
        return self.update_session(session_id, system_instruction=instruction)

    def update_session(
        self, session_id: str, *, persist: bool = True, **changes: Any
    ) -> ChatSession:
        """Replace fields of one session and stamp ``last_updated_at``.

        With ``persist=False`` only the in-memory state changes; the caller
        is expected to follow up with ``save()``.
        """
        current = self.get(session_id)
        updated = current.model_copy(update={**changes, "last_updated_at": utc_now()})
        self._commit(
            SelectionState(
                tuple(updated if s.id == session_id else s for s in self._sessions),
                self._active_id,
            ),
            persist=persist,
        )
        return updated

    def update_message(
        self,
        session_id: str,
        message_id: str,
        *,
        persist: bool = True,
        **changes: Any,
    ) -> Optional[Message]:
        """Replace fields of one message in place; None if it no longer exists."""
        session = self.find(session_id)
        if session is None:
            return None
        index = session.index_of(message_id)
        if index < 0:
            return None
        message = session.messages[index].model_copy(update=changes)
        messages = list(session.messages)
        messages[index] = message
        self.update_session(session_id, persist=persist, messages=messages)
        return message

    def apply_derived_title(
        self, session_id: str, *, persist: bool = True
    ) -> Optional[ChatSession]:
        """Replace the placeholder title once the first exchange exists."""
        session = self.find(session_id)
        if session is None or not needs_derived_title(session):
            return None
        title = derive_title(session.messages)
        logger.debug("Derived title %r for chat session %s", title, session_id)
        return self.update_session(session_id, persist=persist, title=title)

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    def export_json(self) -> str:
        return export_sessions(self._sessions)

    def import_json(self, payload: str | bytes) -> list[ChatSession]:
        """Replace every chat with the imported ones.

        Raises:
            ImportFormatError: If the payload is malformed; state is untouched.
        """
        imported = parse_import(payload)
        self._commit(compute_after_import(imported))
        logger.info("Imported %d chat sessions", len(imported))
        return imported

    # ------------------------------------------------------------------
    # Quick prompts
    # ------------------------------------------------------------------

    @property
    def quick_prompts(self) -> list[QuickPrompt]:
        return list(self._quick_prompts)

    def add_quick_prompt(self, title: str, text: str) -> QuickPrompt:
        prompt = QuickPrompt(title=title, text=text)
        self._save_prompts((prompt, *self._quick_prompts))
        return prompt

    def update_quick_prompt(self, prompt_id: str, title: str, text: str) -> QuickPrompt:
        current = next((p for p in self._quick_prompts if p.id == prompt_id), None)
        if current is None:
            raise KeyError(prompt_id)
        updated = current.model_copy(update={"title": title, "text": text})
        self._save_prompts(
            tuple(updated if p.id == prompt_id else p for p in self._quick_prompts)
        )
        return updated

    def delete_quick_prompt(self, prompt_id: str) -> bool:
        remaining = tuple(p for p in self._quick_prompts if p.id != prompt_id)
        if len(remaining) == len(self._quick_prompts):
            return False
        self._save_prompts(remaining)
        return True

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def save(self) -> None:
        """Write the current sessions and active id from a worker thread.

        The store may block (pymongo), so the event loop only awaits it.
        """
        await asyncio.to_thread(self._write)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _commit(self, state: SelectionState, *, persist: bool = True) -> None:
        self._sessions = tuple(state.sessions)
        self._active_id = reconcile_active_id(self._sessions, state.active_id)
        if persist:
            self._write()

    def _write(self) -> None:
        # always the latest state; a late writer never restores older data
        with self._write_lock:
            sessions, active_id = self._sessions, self._active_id
            self._gateway.save_sessions(sessions)
            self._gateway.set_active_id(active_id)

    def _save_prompts(self, prompts: Sequence[QuickPrompt]) -> None:
        self._quick_prompts = tuple(prompts)
        self._gateway.save_quick_prompts(self._quick_prompts)
