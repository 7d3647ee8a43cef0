"""WebSocket endpoint driving message sends, regeneration and cancellation."""

import asyncio
import logging
from typing import Any, Optional

from fastapi import Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from gemchat.core.errors import ChatError
from gemchat.core.lifecycle import MessageLifecycleController
from gemchat.dependencies import get_controller, get_session_manager
from gemchat.memory.manager import SessionManager
from gemchat.models.messages import (
    IncomingMessage,
    Message,
    MessageType,
    OutgoingMessage,
)
from gemchat.models.sessions import SessionSummary

logger = logging.getLogger(__name__)


async def websocket_chat(
    websocket: WebSocket,
    manager: SessionManager = Depends(get_session_manager),
    controller: MessageLifecycleController = Depends(get_controller),
) -> None:
    """Handle WebSocket connections for real-time chat.

    Protocol:
        Client sends JSON: {"type": "send", "session_id": "...", "content": "..."}
        Client sends JSON: {"type": "regenerate", "session_id": "...", "message_id": "..."}
        Client sends JSON: {"type": "cancel"}
        Server sends JSON: {"type": "status"|"message"|"session"|"error", ...}

    Every ``message`` frame carries the full current state of one message;
    clients replace the message with the same id instead of appending.
    A ``cancel`` frame, like a disconnect, only stops exchanges started on
    this socket.
    """
    await websocket.accept()
    logger.info("WebSocket connected")
    await _send_message(websocket, MessageType.STATUS, content="Connected")

    # exchanges started by this socket only
    exchanges: set[asyncio.Task] = set()

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                request = IncomingMessage.model_validate_json(raw)
            except ValidationError as exc:
                logger.debug("Rejected WebSocket frame: %s", exc)
                await _send_message(
                    websocket, MessageType.ERROR, content="Invalid message format"
                )
                continue

            if request.type == MessageType.CANCEL:
                if _cancel_all(exchanges):
                    await _send_message(
                        websocket, MessageType.STATUS, content="Cancelling..."
                    )
                else:
                    await _send_message(
                        websocket, MessageType.ERROR, content="Nothing to cancel"
                    )
                continue

            if request.type not in (MessageType.SEND, MessageType.REGENERATE):
                await _send_message(
                    websocket, MessageType.ERROR, content="Unsupported message type"
                )
                continue

            if not request.session_id:
                await _send_message(
                    websocket, MessageType.ERROR, content="session_id is required"
                )
                continue

            exchange = asyncio.create_task(
                _handle_exchange(websocket, manager, controller, request)
            )
            exchanges.add(exchange)
            exchange.add_done_callback(exchanges.discard)

    except WebSocketDisconnect:
        logger.info("WebSocket disconnected")
    except Exception as exc:
        logger.exception("WebSocket error")
        try:
            await _send_message(websocket, MessageType.ERROR, content=str(exc))
        except Exception:
            logger.debug("Could not report error to a closed WebSocket")
    finally:
        # a reply nobody can see any more is abandoned
        if _cancel_all(exchanges):
            await asyncio.gather(*exchanges, return_exceptions=True)
        logger.info("WebSocket handler finished")


def _cancel_all(exchanges: set[asyncio.Task]) -> bool:
    """Cancel the unfinished exchanges of one socket; True if there were any."""
    pending = [task for task in exchanges if not task.done()]
    for task in pending:
        task.cancel()
    return bool(pending)


async def _handle_exchange(
    websocket: WebSocket,
    manager: SessionManager,
    controller: MessageLifecycleController,
    request: IncomingMessage,
) -> None:
    """Run one send or regenerate and stream its updates to the client."""
    session_id = request.session_id or ""

    async def on_update(updated_session_id: str, message: Message) -> None:
        await _send_message(
            websocket,
            MessageType.MESSAGE,
            session_id=updated_session_id,
            message=message.model_dump(mode="json", by_alias=True),
        )

    session = manager.find(session_id)
    title_before = session.title if session is not None else None

    await _send_message(
        websocket, MessageType.STATUS, content="Thinking...", session_id=session_id
    )

    try:
        if request.type == MessageType.SEND:
            result = await controller.send(
                session_id, request.content or "", on_update=on_update
            )
            rejected = "Empty message"
        else:
            result = await controller.regenerate(
                session_id, request.message_id or "", on_update=on_update
            )
            rejected = "Only a bot reply to a user message can be regenerated"
    except ChatError as exc:
        logger.info("Exchange rejected for session %s: %s", session_id, exc)
        await _send_message(
            websocket, MessageType.ERROR, content=str(exc), session_id=session_id
        )
        return
    except Exception as exc:
        logger.exception("Error processing message in session %s", session_id)
        await _send_message(
            websocket,
            MessageType.ERROR,
            content=f"Processing error: {exc}",
            session_id=session_id,
        )
        return

    if result is None:
        await _send_message(
            websocket, MessageType.ERROR, content=rejected, session_id=session_id
        )
        return

    session = manager.find(session_id)
    if session is not None and session.title != title_before:
        await _send_message(
            websocket,
            MessageType.SESSION,
            session_id=session_id,
            session=SessionSummary.from_session(session).model_dump(
                mode="json", by_alias=True
            ),
        )

    if result.is_error and controller.last_error:
        await _send_message(
            websocket,
            MessageType.ERROR,
            content=controller.last_error,
            session_id=session_id,
        )

    await _send_message(
        websocket, MessageType.STATUS, content="Done", session_id=session_id
    )


async def _send_message(
    websocket: WebSocket,
    msg_type: MessageType,
    *,
    content: Optional[str] = None,
    session_id: Optional[str] = None,
    message: Optional[dict[str, Any]] = None,
    session: Optional[dict[str, Any]] = None,
) -> None:
    """Send a structured JSON frame over the WebSocket."""
    frame = OutgoingMessage(
        type=msg_type,
        content=content,
        session_id=session_id,
        message=message,
        session=session,
    )
    await websocket.send_json(frame.model_dump(mode="json", exclude_none=True))
