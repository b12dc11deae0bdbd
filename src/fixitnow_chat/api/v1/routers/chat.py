from __future__ import annotations

from fastapi import APIRouter, status

from fixitnow_chat.api.deps import ChatDep, CurrentUserDep, RegistryDep
from fixitnow_chat.api.v1.schemas.conversation import (
    AdminConversationRequest,
    ConversationResponse,
    StartConversationRequest,
)
from fixitnow_chat.api.v1.schemas.message import MessageResponse, SendMessageRequest
from fixitnow_chat.api.v1.schemas.state import ChatStateResponse
from fixitnow_chat.services.chat_service import ChatService

router = APIRouter(prefix="/api/v1/chat", tags=["chat"])


def _state(chat: ChatService) -> ChatStateResponse:
    return ChatStateResponse.model_validate(chat.snapshot(), from_attributes=True)


@router.get("/state", response_model=ChatStateResponse)
async def get_state(chat: ChatDep) -> ChatStateResponse:
    return _state(chat)


@router.get("/conversations", response_model=list[ConversationResponse])
async def list_conversations(chat: ChatDep) -> list[ConversationResponse]:
    return [ConversationResponse.model_validate(c) for c in chat.conversations]


@router.post("/conversations/refresh", response_model=list[ConversationResponse])
async def refresh_conversations(chat: ChatDep) -> list[ConversationResponse]:
    conversations = await chat.load_conversations()
    return [ConversationResponse.model_validate(c) for c in conversations]


@router.post("/conversations/start", response_model=ConversationResponse)
async def start_conversation(body: StartConversationRequest, chat: ChatDep) -> ConversationResponse:
    conv = await chat.start_conversation(
        body.other_user_id, body.initial_message, body.other_user_name,
    )
    return ConversationResponse.model_validate(conv)


@router.post("/conversations/admin", response_model=ConversationResponse)
async def start_admin_conversation(
    body: AdminConversationRequest,
    chat: ChatDep,
) -> ConversationResponse:
    conv = await chat.start_admin_conversation(body.initial_message)
    return ConversationResponse.model_validate(conv)


@router.post("/conversations/close", response_model=ChatStateResponse)
async def close_conversation(chat: ChatDep) -> ChatStateResponse:
    await chat.close_conversation()
    return _state(chat)


@router.post("/conversations/{conversation_id}/open", response_model=ChatStateResponse)
async def open_conversation(conversation_id: str, chat: ChatDep) -> ChatStateResponse:
    await chat.open_conversation(conversation_id)
    return _state(chat)


@router.post("/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message(body: SendMessageRequest, chat: ChatDep) -> MessageResponse:
    msg = await chat.send_message(body.receiver_id, body.text)
    return MessageResponse.model_validate(msg)


@router.post("/toggle", response_model=ChatStateResponse)
async def toggle_chat(chat: ChatDep) -> ChatStateResponse:
    chat.toggle_chat()
    return _state(chat)


@router.post("/close", response_model=ChatStateResponse)
async def close_chat(chat: ChatDep) -> ChatStateResponse:
    await chat.close_chat()
    return _state(chat)


@router.post("/reconnect", response_model=ChatStateResponse)
async def reconnect(chat: ChatDep) -> ChatStateResponse:
    await chat.reconnect()
    return _state(chat)


@router.post("/logout")
async def logout(user: CurrentUserDep, registry: RegistryDep) -> dict[str, bool]:
    closed = await registry.logout(user.id)
    return {"closed": closed}
