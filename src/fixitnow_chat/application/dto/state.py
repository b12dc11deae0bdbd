from __future__ import annotations

from dataclasses import dataclass

from fixitnow_chat.domain.entities.conversation import Conversation
from fixitnow_chat.domain.entities.message import Message


@dataclass(frozen=True, slots=True)
class ChatState:
    conversations: tuple[Conversation, ...]
    selected_conversation: Conversation | None
    messages: tuple[Message, ...]
    is_chat_open: bool
    is_connected: bool
    loading: bool
    total_unread_count: int
