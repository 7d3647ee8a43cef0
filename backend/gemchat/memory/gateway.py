"""Persistence gateway for sessions, the active id and quick prompts.

Best-effort by contract: failures are logged and swallowed, readers fall
back to empty values, and nothing is ever raised into the chat core.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from pydantic import TypeAdapter

from gemchat.memory.store import KeyValueStore
from gemchat.models.prompts import QuickPrompt
from gemchat.models.sessions import ChatSession

logger = logging.getLogger(__name__)

CHAT_SESSIONS_KEY = "ChatSessions"
ACTIVE_CHAT_ID_KEY = "ActiveChatId"
QUICK_PROMPTS_KEY = "QuickPrompts"

_sessions_adapter = TypeAdapter(list[ChatSession])
_prompts_adapter = TypeAdapter(list[QuickPrompt])


class PersistenceGateway:
    """Serializes chat state into a ``KeyValueStore``."""

    def __init__(self, store: KeyValueStore, key_prefix: str = "gemini") -> None:
        self._store = store
        self._prefix = key_prefix

    @property
    def store(self) -> KeyValueStore:
        return self._store

    def _key(self, name: str) -> str:
        # keys read as geminiChatSessions, geminiActiveChatId, ...
        if not self._prefix:
            return name[:1].lower() + name[1:]
        return f"{self._prefix}{name}"

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def get_sessions(self) -> list[ChatSession]:
        try:
            raw = self._store.get(self._key(CHAT_SESSIONS_KEY))
            return _sessions_adapter.validate_json(raw) if raw else []
        except Exception:
            logger.exception("Error loading chat sessions from storage")
            return []

    def save_sessions(self, sessions: Sequence[ChatSession]) -> None:
        try:
            payload = _sessions_adapter.dump_json(list(sessions), by_alias=True)
            self._store.set(self._key(CHAT_SESSIONS_KEY), payload.decode("utf-8"))
        except Exception:
            logger.exception("Error saving chat sessions to storage")

    # ------------------------------------------------------------------
    # Active session id
    # ------------------------------------------------------------------

    def get_active_id(self) -> Optional[str]:
        try:
            return self._store.get(self._key(ACTIVE_CHAT_ID_KEY)) or None
        except Exception:
            logger.exception("Error loading active chat id from storage")
            return None

    def set_active_id(self, session_id: Optional[str]) -> None:
        try:
            if session_id:
                self._store.set(self._key(ACTIVE_CHAT_ID_KEY), session_id)
            else:
                self._store.delete(self._key(ACTIVE_CHAT_ID_KEY))
        except Exception:
            logger.exception("Error saving active chat id to storage")

    # ------------------------------------------------------------------
    # Quick prompts
    # ------------------------------------------------------------------

    def get_quick_prompts(self) -> list[QuickPrompt]:
        try:
            raw = self._store.get(self._key(QUICK_PROMPTS_KEY))
            return _prompts_adapter.validate_json(raw) if raw else []
        except Exception:
            logger.exception("Error loading quick prompts from storage")
            return []

    def save_quick_prompts(self, prompts: Sequence[QuickPrompt]) -> None:
        try:
            payload = _prompts_adapter.dump_json(list(prompts), by_alias=True)
            self._store.set(self._key(QUICK_PROMPTS_KEY), payload.decode("utf-8"))
        except Exception:
            logger.exception("Error saving quick prompts to storage")
