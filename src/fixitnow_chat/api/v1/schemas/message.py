from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class SendMessageRequest(BaseModel):
    receiver_id: int = Field(gt=0)
    text: str = Field(min_length=1, max_length=5000)


class MessageResponse(BaseModel):
    id: int | str | None
    sender_id: int | str | None
    receiver_id: int | str | None
    text: str | None
    room_id: str | None
    sent_at: datetime
    sender_name: str | None
    receiver_name: str | None
    client_msg_id: UUID | None
    pending: bool
    extra: dict[str, Any]

    model_config = {"from_attributes": True}
