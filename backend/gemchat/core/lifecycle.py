"""Message lifecycle: send, stream, complete or fail, regenerate.

Each bot reply moves through ``Pending -> Streaming -> Complete | Errored``
and back to ``Pending`` when regenerated. One exchange may be in flight
across the whole application; the controller's sending flag is that single
slot. Backend failures are converted to the Errored state here and never
propagate into the session collection.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from typing import Awaitable, Callable, Optional, Sequence

from gemchat.agent.backend import ChatBackend
from gemchat.agent.prompts import (
    CANCELLED_MESSAGE,
    error_message,
    resolve_system_instruction,
)
from gemchat.core.errors import BackendUnavailableError, SendInProgressError
from gemchat.memory.manager import SessionManager
from gemchat.models.messages import Message

logger = logging.getLogger(__name__)

MessageListener = Callable[[str, Message], Awaitable[None]]


def backend_history(messages: Sequence[Message]) -> list[Message]:
    """Prior turns in the shape the backend accepts.

    Unfinished placeholders are dropped and the history starts at the first
    user turn (leading bot messages such as the welcome text are skipped).
    """
    settled = [m for m in messages if not m.is_loading]
    first_user = next((i for i, m in enumerate(settled) if m.is_user), len(settled))
    return settled[first_user:]


class MessageLifecycleController:
    """Drives bot replies from placeholder to a terminal state."""

    def __init__(self, sessions: SessionManager, backend: ChatBackend) -> None:
        self._sessions = sessions
        self._backend = backend
        self._sending = False
        self._task: Optional[asyncio.Task] = None
        self.last_error: Optional[str] = None

    @property
    def is_sending(self) -> bool:
        return self._sending

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def send(
        self,
        session_id: str,
        text: str,
        *,
        on_update: Optional[MessageListener] = None,
    ) -> Optional[Message]:
        """Append a user message and stream the bot reply into a placeholder.

        Returns the bot message in its terminal state, or None when ``text``
        is blank (nothing is appended and the backend is not called).

        Raises:
            SendInProgressError: If another exchange is in flight.
            BackendUnavailableError: If the backend cannot be used.
            SessionNotFoundError: If ``session_id`` is unknown.
        """
        prompt = text.strip()
        if not prompt:
            logger.debug("Ignoring empty message for session %s", session_id)
            return None
        self._ensure_can_send()

        session = self._sessions.get(session_id)
        history = backend_history(session.messages)
        user_message = Message.from_user(prompt)
        placeholder = Message.placeholder()
        self._sessions.update_session(
            session_id,
            persist=False,
            messages=[*session.messages, user_message, placeholder],
        )
        return await self._run_exchange(
            session_id,
            placeholder.id,
            prompt,
            history,
            session.system_instruction,
            on_update,
            pending=(user_message, placeholder),
        )

    async def regenerate(
        self,
        session_id: str,
        message_id: str,
        *,
        on_update: Optional[MessageListener] = None,
    ) -> Optional[Message]:
        """Re-run the exchange that produced a bot message.

        Only a bot message directly preceded by a user message qualifies;
        anything else is a no-op returning None.
        """
        self._ensure_can_send()

        session = self._sessions.get(session_id)
        index = session.index_of(message_id)
        if index < 1 or not session.messages[index].is_bot:
            logger.debug("Not regenerating %s: not a bot reply", message_id)
            return None
        user_message = session.messages[index - 1]
        if not user_message.is_user:
            logger.debug("Not regenerating %s: no user message before it", message_id)
            return None

        history = backend_history(session.messages[: index - 1])
        reset = self._sessions.update_message(
            session_id,
            message_id,
            persist=False,
            text="",
            is_loading=True,
            is_error=False,
            sources=[],
        )
        return await self._run_exchange(
            session_id,
            message_id,
            user_message.text,
            history,
            session.system_instruction,
            on_update,
            pending=() if reset is None else (reset,),
        )

    def cancel(self) -> bool:
        """Abandon the in-flight exchange, if any."""
        if self._task is None or self._task.done():
            return False
        logger.info("Cancelling in-flight exchange")
        self._task.cancel()
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_can_send(self) -> None:
        if self._sending:
            raise SendInProgressError()
        status = self._backend.availability()
        if not status.available:
            raise BackendUnavailableError(status.reason or "Backend is not available.")

    async def _run_exchange(
        self,
        session_id: str,
        message_id: str,
        prompt: str,
        history: list[Message],
        system_instruction: str,
        on_update: Optional[MessageListener],
        *,
        pending: Sequence[Message] = (),
    ) -> Optional[Message]:
        # taken before the first await so a second send cannot slip in
        self._sending = True
        self._task = asyncio.current_task()
        self.last_error = None
        message: Optional[Message] = None
        try:
            for update in pending:
                await self._notify(on_update, session_id, update)
            await self._sessions.save()
            stream = self._backend.exchange(
                prompt, history, resolve_system_instruction(system_instruction)
            )
            async with aclosing(stream.updates()) as updates:
                async for snapshot in updates:
                    message = self._sessions.update_message(
                        session_id, message_id, persist=False, text=snapshot
                    )
                    if message is None:
                        logger.info(
                            "Message %s disappeared mid-stream; dropping reply",
                            message_id,
                        )
                        return None
                    await self._notify(on_update, session_id, message)
            result = await stream.response()
            message = self._sessions.update_message(
                session_id,
                message_id,
                persist=False,
                text=result.text,
                sources=list(result.sources),
                is_loading=False,
                is_error=False,
            )
        except asyncio.CancelledError:
            message = self._fail(session_id, message_id, CANCELLED_MESSAGE)
            await self._sessions.save()
            if message is not None:
                await self._notify(on_update, session_id, message)
            raise
        except Exception as exc:
            logger.exception("Exchange failed for session %s", session_id)
            self.last_error = str(exc) or exc.__class__.__name__
            message = self._fail(session_id, message_id, error_message(exc))
        finally:
            self._sending = False
            self._task = None

        self._sessions.apply_derived_title(session_id, persist=False)
        await self._sessions.save()
        if message is not None:
            await self._notify(on_update, session_id, message)
        return message

    def _fail(self, session_id: str, message_id: str, text: str) -> Optional[Message]:
        return self._sessions.update_message(
            session_id,
            message_id,
            persist=False,
            text=text,
            sources=[],
            is_loading=False,
            is_error=True,
        )

    async def _notify(
        self,
        listener: Optional[MessageListener],
        session_id: str,
        message: Message,
    ) -> None:
        if listener is None:
            return
        try:
            await listener(session_id, message)
        except Exception:
            logger.exception("Message listener failed for session %s", session_id)
