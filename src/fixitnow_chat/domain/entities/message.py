from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Message:
    id: int | str | None
    sender_id: int | str | None
    receiver_id: int | str | None
    text: str | None
    room_id: str | None
    sent_at: datetime
    sender_name: str | None = None
    receiver_name: str | None = None
    client_msg_id: UUID | None = None
    pending: bool = False
    extra: dict[str, Any] = field(default_factory=dict)
