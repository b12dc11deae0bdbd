from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Notification:
    title: str
    body: str | None
    conversation_id: str | None
    sender_id: int | str | None
