"""Tests for the chat WebSocket endpoint."""

import asyncio
import json

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from conftest import FakeBackend
from gemchat.agent.prompts import CANCELLED_MESSAGE
from gemchat.agent.stream import StreamChunk
from gemchat.api.chat import websocket_chat
from gemchat.core.errors import SendInProgressError
from gemchat.core.lifecycle import MessageLifecycleController
from gemchat.memory.manager import SessionManager
from gemchat.models.messages import MessageState


def _connect(ws) -> None:
    frame = ws.receive_json()
    assert frame["type"] == "status"
    assert frame["content"] == "Connected"


def _frames_until_done(ws) -> list[dict]:
    frames = []
    while True:
        frame = ws.receive_json()
        frames.append(frame)
        if frame["type"] == "status" and frame.get("content") == "Done":
            return frames


def _next_error(ws) -> dict:
    while True:
        frame = ws.receive_json()
        if frame["type"] == "error":
            return frame


def test_send_streams_message_snapshots(
    ws_client: TestClient, manager: SessionManager, backend: FakeBackend
):
    backend.replies.append([StreamChunk("Hi"), StreamChunk(" there!")])
    session_id = manager.active_id

    with ws_client.websocket_connect("/ws/chat") as ws:
        _connect(ws)
        ws.send_json({"type": "send", "session_id": session_id, "content": "Hello"})
        frames = _frames_until_done(ws)

    assert frames[0]["type"] == "status"
    assert frames[0]["content"] == "Thinking..."

    messages = [f["message"] for f in frames if f["type"] == "message"]
    assert messages[0]["sender"] == "user"
    assert messages[0]["text"] == "Hello"
    assert messages[1]["isLoading"] is True
    assert [m["text"] for m in messages[2:]] == ["Hi", "Hi there!", "Hi there!"]
    assert messages[-1]["isLoading"] is False
    assert {m["id"] for m in messages[1:]} == {messages[1]["id"]}

    sessions = [f["session"] for f in frames if f["type"] == "session"]
    assert len(sessions) == 1
    assert sessions[0]["id"] == session_id
    assert sessions[0]["title"] == "Hello"
    assert sessions[0]["messageCount"] == 3
    assert manager.get(session_id).messages[-1].text == "Hi there!"


def test_regenerate_replaces_reply(
    ws_client: TestClient, manager: SessionManager, backend: FakeBackend
):
    backend.replies.extend([[StreamChunk("first")], [StreamChunk("second")]])
    session_id = manager.active_id

    with ws_client.websocket_connect("/ws/chat") as ws:
        _connect(ws)
        ws.send_json({"type": "send", "session_id": session_id, "content": "Hello"})
        _frames_until_done(ws)
        reply_id = manager.get(session_id).messages[-1].id

        ws.send_json(
            {"type": "regenerate", "session_id": session_id, "message_id": reply_id}
        )
        frames = _frames_until_done(ws)

    messages = [f["message"] for f in frames if f["type"] == "message"]
    assert messages[0]["text"] == ""
    assert messages[-1]["text"] == "second"
    assert not any(f["type"] == "session" for f in frames)
    assert len(manager.get(session_id).messages) == 3


def test_failed_exchange_reports_error(
    ws_client: TestClient, manager: SessionManager, backend: FakeBackend
):
    backend.replies.append([RuntimeError("quota exceeded")])

    with ws_client.websocket_connect("/ws/chat") as ws:
        _connect(ws)
        ws.send_json(
            {"type": "send", "session_id": manager.active_id, "content": "Hello"}
        )
        error = _next_error(ws)
        assert error["content"] == "quota exceeded"
        frames = _frames_until_done(ws)
        assert frames[-1]["type"] == "status"

    reply = manager.active_session.messages[-1]
    assert reply.is_error
    assert "quota exceeded" in reply.text


def test_unavailable_backend_is_reported(
    ws_client: TestClient, manager: SessionManager, backend: FakeBackend
):
    backend.available = False
    backend.reason = "GOOGLE_API_KEY environment variable is not set."

    with ws_client.websocket_connect("/ws/chat") as ws:
        _connect(ws)
        ws.send_json(
            {"type": "send", "session_id": manager.active_id, "content": "Hello"}
        )
        assert _next_error(ws)["content"] == backend.reason

    assert len(manager.active_session.messages) == 1


def test_invalid_frames_are_rejected(ws_client: TestClient, manager: SessionManager):
    with ws_client.websocket_connect("/ws/chat") as ws:
        _connect(ws)

        ws.send_text("not json")
        assert ws.receive_json()["content"] == "Invalid message format"

        ws.send_json({"type": "send", "content": "Hello"})
        assert ws.receive_json()["content"] == "session_id is required"

        ws.send_json({"type": "status"})
        assert ws.receive_json()["content"] == "Unsupported message type"

        ws.send_json({"type": "send", "session_id": "nope", "content": "Hello"})
        assert _next_error(ws)["content"] == "Chat session not found: nope"

        ws.send_json({"type": "send", "session_id": manager.active_id, "content": " "})
        assert _next_error(ws)["content"] == "Empty message"


class ScriptedWebSocket:
    """In-process socket: the test pushes client frames and reads server frames."""

    def __init__(self) -> None:
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.sent: list[dict] = []

    async def accept(self) -> None:
        pass

    async def receive_text(self) -> str:
        frame = await self.incoming.get()
        if frame is None:
            raise WebSocketDisconnect(code=1000)
        return json.dumps(frame)

    async def send_json(self, data: dict) -> None:
        self.sent.append(data)

    def push(self, frame: dict) -> None:
        self.incoming.put_nowait(frame)

    def disconnect(self) -> None:
        self.incoming.put_nowait(None)

    async def wait_for(self, predicate) -> dict:
        for _ in range(500):
            for frame in self.sent:
                if predicate(frame):
                    return frame
            await asyncio.sleep(0.01)
        raise AssertionError(f"no matching frame in {self.sent}")


def _message_text(text: str):
    return lambda frame: (frame.get("message") or {}).get("text") == text


async def _wait_idle(controller: MessageLifecycleController) -> None:
    for _ in range(500):
        if not controller.is_sending:
            return
        await asyncio.sleep(0.01)
    raise AssertionError("exchange never finished")


@pytest.mark.asyncio
async def test_disconnect_cancels_reply_after_rejected_send(
    manager: SessionManager, backend: FakeBackend, controller
):
    gate = asyncio.Event()
    backend.replies.append([StreamChunk("partial"), gate])
    session_id = manager.active_id
    socket = ScriptedWebSocket()
    handler = asyncio.create_task(websocket_chat(socket, manager, controller))

    socket.push({"type": "send", "session_id": session_id, "content": "first"})
    await socket.wait_for(_message_text("partial"))
    socket.push({"type": "send", "session_id": session_id, "content": "second"})
    error = await socket.wait_for(lambda frame: frame["type"] == "error")
    assert error["content"] == str(SendInProgressError())

    socket.disconnect()
    await asyncio.wait_for(handler, timeout=5)

    assert not gate.is_set()
    assert not controller.is_sending
    messages = manager.get(session_id).messages
    assert [m.text for m in messages[1:]] == ["first", CANCELLED_MESSAGE]
    assert messages[-1].state == MessageState.ERRORED


@pytest.mark.asyncio
async def test_cancel_only_stops_exchanges_of_the_same_socket(
    manager: SessionManager, backend: FakeBackend, controller
):
    gate = asyncio.Event()
    backend.replies.append([StreamChunk("partial"), gate])
    session_id = manager.active_id
    owner, bystander = ScriptedWebSocket(), ScriptedWebSocket()
    handlers = [
        asyncio.create_task(websocket_chat(socket, manager, controller))
        for socket in (owner, bystander)
    ]

    owner.push({"type": "send", "session_id": session_id, "content": "Hello"})
    await owner.wait_for(_message_text("partial"))

    bystander.push({"type": "cancel"})
    error = await bystander.wait_for(lambda frame: frame["type"] == "error")
    assert error["content"] == "Nothing to cancel"
    assert controller.is_sending

    owner.push({"type": "cancel"})
    await owner.wait_for(_message_text(CANCELLED_MESSAGE))
    await _wait_idle(controller)
    assert manager.get(session_id).messages[-1].state == MessageState.ERRORED

    owner.disconnect()
    bystander.disconnect()
    await asyncio.wait_for(asyncio.gather(*handlers), timeout=5)
