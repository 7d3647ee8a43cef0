"""Aggregation of one chunked backend reply.

A ``ChatStream`` turns the backend's partial replies into two views:

* a live sequence of snapshots for incremental rendering; every element is
  the full best-known text so far, so consumers replace rather than append;
* one completion result (final text plus cited sources) that resolves once,
  after the sequence ends.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Mapping, Optional

from gemchat.core.errors import StreamClosedError
from gemchat.models.messages import WebSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreamChunk:
    """One partial reply as received from the backend (a text delta)."""

    text: str = ""
    grounding_metadata: Optional[Mapping[str, Any]] = None


@dataclass(frozen=True)
class AggregatedResponse:
    """Canonical result of a finished reply."""

    text: str = ""
    sources: tuple[WebSource, ...] = ()


def extract_sources(grounding_metadata: Optional[Mapping[str, Any]]) -> list[WebSource]:
    """Collect cited web pages from Gemini grounding metadata.

    Only entries with a non-empty link are kept; a missing title falls back
    to the link itself.
    """
    if not grounding_metadata:
        return []

    chunks = (
        grounding_metadata.get("grounding_chunks")
        or grounding_metadata.get("groundingChunks")
        or []
    )
    sources: list[WebSource] = []
    for chunk in chunks:
        web = chunk.get("web") if isinstance(chunk, Mapping) else None
        if not isinstance(web, Mapping):
            continue
        uri = str(web.get("uri") or "").strip()
        if not uri:
            continue
        title = str(web.get("title") or "").strip()
        sources.append(WebSource(uri=uri, title=title or uri))
    return sources


class ChatStream:
    """Lazy, finite, single-use view over one backend reply."""

    def __init__(self, chunks: AsyncIterator[StreamChunk]) -> None:
        self._chunks = chunks
        self._started = False
        self._done = asyncio.Event()
        self._result: Optional[AggregatedResponse] = None
        self._error: Optional[BaseException] = None

    def __aiter__(self) -> AsyncIterator[str]:
        return self.updates()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    async def updates(self) -> AsyncIterator[str]:
        """Yield the accumulated reply text after every chunk that adds text."""
        if self._started:
            raise RuntimeError("ChatStream can only be consumed once")
        self._started = True

        parts: list[str] = []
        grounding: Optional[Mapping[str, Any]] = None
        try:
            async for chunk in self._chunks:
                if chunk.grounding_metadata:
                    grounding = chunk.grounding_metadata
                if not chunk.text:
                    continue
                parts.append(chunk.text)
                yield "".join(parts)
        except (GeneratorExit, asyncio.CancelledError):
            self._finish(
                error=StreamClosedError("Stream closed before the reply completed.")
            )
            await self._close_source()
            raise
        except Exception as exc:
            logger.error("Error during stream aggregation: %s", exc)
            self._finish(error=exc)
            await self._close_source()
            raise

        sources = tuple(extract_sources(grounding))
        logger.debug(
            "Stream finished: %d chunks of text, %d sources", len(parts), len(sources)
        )
        self._finish(result=AggregatedResponse(text="".join(parts), sources=sources))

    async def response(self) -> AggregatedResponse:
        """Final aggregated reply; drains the stream if nobody iterated it."""
        if not self._started:
            async for _ in self.updates():
                pass
        await self._done.wait()
        if self._error is not None:
            raise self._error
        assert self._result is not None
        return self._result

    def _finish(
        self,
        *,
        result: Optional[AggregatedResponse] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        if self._done.is_set():
            return
        self._result = result
        self._error = error
        self._done.set()

    async def _close_source(self) -> None:
        aclose = getattr(self._chunks, "aclose", None)
        if aclose is not None:
            await aclose()
