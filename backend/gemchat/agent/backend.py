"""Gemini backend reached through LangChain.

Wraps ``ChatGoogleGenerativeAI`` behind a single streaming call: prompt text,
prior turns and a system instruction in, a ``ChatStream`` out.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, NamedTuple, Optional, Protocol, Sequence

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
)
from langchain_google_genai import ChatGoogleGenerativeAI

from gemchat.agent.stream import ChatStream, StreamChunk
from gemchat.config import Settings, settings
from gemchat.core.errors import BackendError, BackendUnavailableError, HistoryError
from gemchat.models.messages import Message

logger = logging.getLogger(__name__)

MISSING_KEY_REASON = (
    "GOOGLE_API_KEY environment variable is not set. "
    "Gemini API will not be functional."
)
GOOGLE_SEARCH_TOOL = {"google_search": {}}


class Availability(NamedTuple):
    """Result of the backend capability check."""

    available: bool
    reason: Optional[str] = None


class ChatBackend(Protocol):
    """Streaming text-exchange contract consumed by the chat core."""

    def availability(self) -> Availability: ...

    def exchange(
        self,
        prompt: str,
        prior: Sequence[Message],
        system_instruction: str,
    ) -> ChatStream: ...


def validate_history(prior: Sequence[Message]) -> None:
    """Fail fast on prior turns the backend cannot accept."""
    if not prior:
        return
    if not prior[0].is_user:
        raise HistoryError("Conversation history must start with a user turn.")
    for message in prior:
        if message.is_loading:
            raise HistoryError(
                f"Conversation history contains an unfinished reply: {message.id}"
            )


def to_langchain_messages(
    prompt: str,
    prior: Sequence[Message],
    system_instruction: str,
) -> list[BaseMessage]:
    """Build the role-tagged turn list sent to Gemini."""
    messages: list[BaseMessage] = []
    if system_instruction.strip():
        messages.append(SystemMessage(content=system_instruction))
    for message in prior:
        if message.is_user:
            messages.append(HumanMessage(content=message.text))
        else:
            messages.append(AIMessage(content=message.text))
    messages.append(HumanMessage(content=prompt))
    return messages


def chunk_text(chunk: BaseMessage) -> str:
    """Text carried by a streamed chunk (string or list-of-parts content)."""
    content = chunk.content
    if isinstance(content, str):
        return content
    parts: list[str] = []
    for part in content or []:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(str(part.get("text", "")))
    return "".join(parts)


def chunk_grounding(chunk: BaseMessage) -> Optional[dict[str, Any]]:
    """Grounding metadata attached to a streamed chunk, if any."""
    metadata = getattr(chunk, "response_metadata", None) or {}
    grounding = metadata.get("grounding_metadata") or metadata.get("groundingMetadata")
    return grounding or None


class GeminiBackend:
    """Gemini chat model with optional Google Search grounding."""

    def __init__(
        self,
        config: Settings = settings,
        llm: Optional[BaseChatModel] = None,
    ) -> None:
        self._llm: Any = None
        self._reason: Optional[str] = None

        if llm is not None:
            self._llm = llm
        elif not config.google_api_key:
            self._reason = MISSING_KEY_REASON
            logger.error(self._reason)
        else:
            try:
                self._llm = ChatGoogleGenerativeAI(
                    model=config.gemini_model,
                    google_api_key=config.google_api_key,
                    temperature=config.temperature,
                )
                if config.enable_web_search:
                    self._llm = self._llm.bind_tools([GOOGLE_SEARCH_TOOL])
            except Exception as exc:
                logger.exception("Error initializing Gemini client")
                self._reason = f"Failed to initialize Gemini client: {exc}"

        if self._llm is not None:
            logger.info(
                "GeminiBackend initialised with model=%s, web_search=%s",
                config.gemini_model,
                config.enable_web_search,
            )

    def availability(self) -> Availability:
        if self._llm is None:
            return Availability(False, self._reason or "Gemini client is not available.")
        return Availability(True)

    def exchange(
        self,
        prompt: str,
        prior: Sequence[Message],
        system_instruction: str,
    ) -> ChatStream:
        """Start one exchange; nothing is sent until the stream is consumed."""
        status = self.availability()
        if not status.available:
            raise BackendUnavailableError(status.reason or "")
        if not prompt.strip():
            raise HistoryError("Message text cannot be empty.")
        validate_history(prior)

        messages = to_langchain_messages(prompt, prior, system_instruction)
        return ChatStream(self._chunks(messages))

    async def _chunks(self, messages: list[BaseMessage]) -> AsyncIterator[StreamChunk]:
        try:
            async for chunk in self._llm.astream(messages):
                yield StreamChunk(
                    text=chunk_text(chunk),
                    grounding_metadata=chunk_grounding(chunk),
                )
        except Exception as exc:
            logger.error("Error streaming from Gemini: %s", exc)
            raise BackendError(f"Gemini API error: {exc}") from exc
