"""Shared test fixtures for the Gem Chat backend."""

import asyncio
from collections.abc import AsyncGenerator, Generator
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional, Sequence

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from gemchat.agent.backend import Availability, validate_history
from gemchat.agent.stream import ChatStream, StreamChunk
from gemchat.core.lifecycle import MessageLifecycleController
from gemchat.dependencies import get_backend, get_controller, get_session_manager
from gemchat.main import app
from gemchat.memory.gateway import PersistenceGateway
from gemchat.memory.manager import SessionManager
from gemchat.memory.store import InMemoryKeyValueStore
from gemchat.models.messages import Message


@dataclass
class RecordedExchange:
    prompt: str
    prior: list[Message]
    system_instruction: str


@dataclass
class FakeBackend:
    """Scripted stand-in for the Gemini backend.

    Each entry of ``replies`` is the script for one exchange. A script item
    is a ``StreamChunk`` (yielded), an ``Exception`` (raised) or an
    ``asyncio.Event`` (awaited, to hold the stream open).
    """

    replies: list[list[Any]] = field(default_factory=list)
    available: bool = True
    reason: Optional[str] = None
    calls: list[RecordedExchange] = field(default_factory=list)

    def availability(self) -> Availability:
        if self.available:
            return Availability(True)
        return Availability(False, self.reason or "Backend disabled for tests")

    def exchange(
        self,
        prompt: str,
        prior: Sequence[Message],
        system_instruction: str,
    ) -> ChatStream:
        validate_history(prior)
        self.calls.append(RecordedExchange(prompt, list(prior), system_instruction))
        script = self.replies.pop(0) if self.replies else [StreamChunk(text="ok")]
        return ChatStream(self._chunks(script))

    async def _chunks(self, script: list[Any]) -> AsyncIterator[StreamChunk]:
        for item in script:
            if isinstance(item, BaseException):
                raise item
            if isinstance(item, asyncio.Event):
                await item.wait()
                continue
            yield item


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def gateway(store: InMemoryKeyValueStore) -> PersistenceGateway:
    return PersistenceGateway(store)


@pytest.fixture
def manager(gateway: PersistenceGateway) -> SessionManager:
    """Session manager holding one fresh chat with its welcome message."""
    manager = SessionManager(gateway)
    manager.load()
    return manager


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def controller(
    manager: SessionManager, backend: FakeBackend
) -> MessageLifecycleController:
    return MessageLifecycleController(manager, backend)


@pytest.fixture
def overrides(
    manager: SessionManager,
    backend: FakeBackend,
    controller: MessageLifecycleController,
) -> Generator[None, None, None]:
    """Point the app's dependency singletons at the test doubles."""
    app.dependency_overrides[get_session_manager] = lambda: manager
    app.dependency_overrides[get_backend] = lambda: backend
    app.dependency_overrides[get_controller] = lambda: controller
    yield
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(overrides: None) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing FastAPI endpoints."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def ws_client(overrides: None) -> TestClient:
    """Synchronous client for the WebSocket endpoint."""
    return TestClient(app)


async def wait_until_sending(controller: MessageLifecycleController) -> None:
    """Yield to the loop until an exchange holds the sending slot."""
    for _ in range(100):
        if controller.is_sending:
            return
        await asyncio.sleep(0)
    raise AssertionError("exchange never started")
