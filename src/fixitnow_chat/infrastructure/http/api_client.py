"""REST client for the FixItNow chat endpoints."""
from __future__ import annotations

import logging
from typing import Any

import httpx

from fixitnow_chat.application.exceptions import FetchError, SendError
from fixitnow_chat.domain.entities.conversation import Conversation
from fixitnow_chat.domain.entities.message import Message
from fixitnow_chat.services.normalizer import normalize, normalize_conversation

logger = logging.getLogger(__name__)

CONVERSATIONS_PATH = "/api/chat/conversations/user/{user_id}"
MESSAGES_PATH = "/api/chat/conversations/{conversation_id}/messages"
SEND_PATH = "/api/chat/messages"


class HttpChatApi:
    """Implements application.ports.chat_api.ChatApi on top of httpx."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def list_conversations(self, user_id: int) -> list[Conversation]:
        items = await self._get_list(CONVERSATIONS_PATH.format(user_id=user_id))
        conversations = []
        for item in items:
            conv = normalize_conversation(item)
            if conv is None:
                logger.warning("Skipping conversation summary without id: %r", item)
                continue
            conversations.append(conv)
        return conversations

    async def list_messages(self, conversation_id: str) -> list[Message]:
        items = await self._get_list(MESSAGES_PATH.format(conversation_id=conversation_id))
        return [normalize(item, fallback_room_id=conversation_id) for item in items]

    async def send_message(self, sender_id: int, receiver_id: int, text: str) -> Message:
        body = {"senderId": sender_id, "receiverId": receiver_id, "text": text}
        try:
            response = await self._client.post(SEND_PATH, json=body)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise SendError(_describe(exc)) from exc
        return normalize(data)

    def set_token(self, token: str | None) -> None:
        if token:
            self._client.headers["Authorization"] = f"Bearer {token}"
        else:
            self._client.headers.pop("Authorization", None)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get_list(self, path: str) -> list[Any]:
        try:
            response = await self._client.get(path)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise FetchError(_describe(exc)) from exc
        if not isinstance(data, list):
            raise FetchError(f"Expected a list from {path}, got {type(data).__name__}")
        return data


def _describe(exc: Exception) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"{exc.request.method} {exc.request.url.path} returned {exc.response.status_code}"
    if isinstance(exc, httpx.TimeoutException):
        return "Chat API request timed out"
    return str(exc) or type(exc).__name__
