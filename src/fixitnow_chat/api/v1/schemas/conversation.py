from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class ConversationResponse(BaseModel):
    id: str
    other_user_id: int | None
    other_user_name: str | None
    last_message_text: str | None
    last_message_time: datetime | None
    last_message_sender: str | None
    unread_count: int

    model_config = {"from_attributes": True}


class StartConversationRequest(BaseModel):
    other_user_id: int = Field(gt=0)
    initial_message: str | None = None
    other_user_name: str | None = None


class AdminConversationRequest(BaseModel):
    initial_message: str | None = None
