from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class Conversation:
    id: str
    other_user_id: int | None
    other_user_name: str | None
    last_message_text: str | None = None
    last_message_time: datetime | None = None
    last_message_sender: str | None = None
    unread_count: int = 0
