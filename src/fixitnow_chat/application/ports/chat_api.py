from __future__ import annotations

from typing import Protocol

from fixitnow_chat.domain.entities.conversation import Conversation
from fixitnow_chat.domain.entities.message import Message


class ChatApi(Protocol):
    async def list_conversations(self, user_id: int) -> list[Conversation]: ...

    async def list_messages(self, conversation_id: str) -> list[Message]: ...

    async def send_message(self, sender_id: int, receiver_id: int, text: str) -> Message: ...

    def set_token(self, token: str | None) -> None: ...

    async def aclose(self) -> None: ...
