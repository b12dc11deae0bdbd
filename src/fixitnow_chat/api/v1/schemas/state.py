from __future__ import annotations

from pydantic import BaseModel

from fixitnow_chat.api.v1.schemas.conversation import ConversationResponse
from fixitnow_chat.api.v1.schemas.message import MessageResponse


class ChatStateResponse(BaseModel):
    conversations: list[ConversationResponse]
    selected_conversation: ConversationResponse | None
    messages: list[MessageResponse]
    is_chat_open: bool
    is_connected: bool
    loading: bool
    total_unread_count: int

    model_config = {"from_attributes": True}
