from __future__ import annotations

import asyncio
import logging
from typing import Any

import pydantic
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from fixitnow_chat.api.deps import get_verifier
from fixitnow_chat.api.v1.schemas.message import MessageResponse
from fixitnow_chat.api.v1.schemas.state import ChatStateResponse
from fixitnow_chat.api.v1.schemas.ws import UiCommand, UiEvent
from fixitnow_chat.application.dto.principal import CurrentUser
from fixitnow_chat.application.dto.state import ChatState
from fixitnow_chat.application.exceptions import AppError
from fixitnow_chat.config import settings
from fixitnow_chat.services.chat_service import ChatService
from fixitnow_chat.services.events import STATE_UPDATED

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])


async def _authenticate(token: str) -> CurrentUser | None:
    try:
        verifier = get_verifier()
        return await verifier.verify(token)
    except Exception:
        logger.debug("WS auth failed", exc_info=True)
        return None


@router.websocket("/ws/chat")
async def ws_chat(
    websocket: WebSocket,
    token: str = Query(...),
) -> None:
    user = await _authenticate(token)
    if user is None:
        await websocket.close(code=4001, reason="Authentication failed")
        return

    chat = await websocket.app.state.registry.get_or_create(user, token)
    await websocket.accept()

    outbox: asyncio.Queue[UiEvent] = asyncio.Queue()
    remove_listener = chat.add_listener(
        lambda event_type, data: outbox.put_nowait(_to_event(event_type, data)),
    )
    outbox.put_nowait(_to_event(STATE_UPDATED, chat.snapshot()))

    sender_task = asyncio.create_task(_send_loop(websocket, outbox), name=f"ws-sender-{user.id}")
    heartbeat_task = asyncio.create_task(_heartbeat(outbox), name=f"ws-heartbeat-{user.id}")
    try:
        await _read_loop(websocket, chat, outbox)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS error for user %s", user.id)
    finally:
        remove_listener()
        heartbeat_task.cancel()
        sender_task.cancel()


def _to_event(event_type: str, data: Any) -> UiEvent:
    if isinstance(data, ChatState):
        data = ChatStateResponse.model_validate(data, from_attributes=True).model_dump(mode="json")
    return UiEvent(type=event_type, data=data)


async def _send_loop(ws: WebSocket, outbox: asyncio.Queue[UiEvent]) -> None:
    try:
        while True:
            event = await outbox.get()
            await ws.send_text(event.model_dump_json())
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.debug("WS sender stopped", exc_info=True)


async def _heartbeat(outbox: asyncio.Queue[UiEvent]) -> None:
    interval = settings.WS_HEARTBEAT_SECONDS
    try:
        while True:
            await asyncio.sleep(interval)
            outbox.put_nowait(UiEvent(type="pong"))
    except asyncio.CancelledError:
        pass


async def _read_loop(ws: WebSocket, chat: ChatService, outbox: asyncio.Queue[UiEvent]) -> None:
    while True:
        raw = await ws.receive_text()
        try:
            cmd = UiCommand.model_validate_json(raw)
        except pydantic.ValidationError:
            outbox.put_nowait(UiEvent(type="error", data={"code": "invalid_payload"}))
            continue

        try:
            await _handle_command(chat, cmd, outbox)
        except AppError as exc:
            outbox.put_nowait(UiEvent(
                type="error",
                data={"code": type(exc).__name__, "command": cmd.type, "detail": exc.detail},
            ))


async def _handle_command(chat: ChatService, cmd: UiCommand, outbox: asyncio.Queue[UiEvent]) -> None:
    if cmd.type == "ping":
        outbox.put_nowait(UiEvent(type="pong"))

    elif cmd.type == "conversation.open":
        conversation_id = cmd.data.get("conversation_id")
        if not isinstance(conversation_id, str):
            outbox.put_nowait(UiEvent(type="error", data={"code": "invalid_data", "command": cmd.type}))
            return
        await chat.open_conversation(conversation_id)

    elif cmd.type == "conversation.close":
        await chat.close_conversation()

    elif cmd.type == "message.send":
        msg = await chat.send_message(cmd.data.get("receiver_id"), str(cmd.data.get("text") or ""))
        outbox.put_nowait(UiEvent(
            type="message.sent",
            data=MessageResponse.model_validate(msg).model_dump(mode="json"),
        ))

    elif cmd.type == "chat.toggle":
        chat.toggle_chat()

    elif cmd.type == "chat.close":
        await chat.close_chat()

    else:
        outbox.put_nowait(UiEvent(type="error", data={"code": "unknown_type", "type": cmd.type}))
