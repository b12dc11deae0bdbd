"""Shared test fixtures and in-memory collaborators."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator

import pytest

from fixitnow_chat.application.dto.notification import Notification
from fixitnow_chat.application.dto.principal import CurrentUser
from fixitnow_chat.application.exceptions import FetchError, SendError
from fixitnow_chat.config import settings
from fixitnow_chat.domain.entities.conversation import Conversation
from fixitnow_chat.domain.entities.message import Message
from fixitnow_chat.domain.value_objects.enums import UserRole
from fixitnow_chat.domain.value_objects.ids import conversation_id_for
from fixitnow_chat.infrastructure.ws.manager import ConnectionManager
from fixitnow_chat.services.chat_service import ChatService
from fixitnow_chat.services.normalizer import normalize

ALICE_ID = 3
BOB_ID = 7


@pytest.fixture
def alice() -> CurrentUser:
    return CurrentUser(id=ALICE_ID, name="Alice", role=UserRole.CUSTOMER)


@pytest.fixture
def bob() -> CurrentUser:
    return CurrentUser(id=BOB_ID, name="Bob", role=UserRole.PROVIDER)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def api() -> FakeChatApi:
    return FakeChatApi()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def connection(transport: FakeTransport) -> ConnectionManager:
    return ConnectionManager(transport, connect_timeout=0.5)


@pytest.fixture
def chat(connection: ConnectionManager, api: FakeChatApi, notifier: RecordingNotifier) -> ChatService:
    return ChatService(
        connection=connection,
        api=api,
        user_channel=settings.user_channel,
        conversation_topic=settings.conversation_topic,
        admin_user_id=settings.CHAT_ADMIN_USER_ID,
        notifier=notifier,
    )


def make_conversation(
    other_user_id: int,
    *,
    me: int = ALICE_ID,
    name: str | None = None,
    unread: int = 0,
    last_text: str | None = None,
) -> Conversation:
    low, high = sorted((me, other_user_id))
    return Conversation(
        id=f"{low}-{high}",
        other_user_id=other_user_id,
        other_user_name=name or f"User {other_user_id}",
        last_message_text=last_text,
        last_message_time=datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc) if last_text else None,
        last_message_sender=None,
        unread_count=unread,
    )


def raw_message(
    message_id: int | None,
    *,
    sender_id: int = BOB_ID,
    receiver_id: int = ALICE_ID,
    text: str = "hello",
    sender_name: str | None = "Bob",
    **extra: Any,
) -> dict[str, Any]:
    raw: dict[str, Any] = {
        "senderId": sender_id,
        "receiverId": receiver_id,
        "text": text,
        "senderName": sender_name,
        "sentAt": "2024-05-01T10:00:00Z",
    }
    if message_id is not None:
        raw["id"] = message_id
    raw.update(extra)
    return raw


async def settle(rounds: int = 20) -> None:
    """Let background tasks (the connection reader) drain pending frames."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# -- in-memory collaborators ----------------------------------------------

_CLOSED = object()


@dataclass
class FakeTransport:
    fail_open: Exception | None = None
    open_delay: float = 0.0
    subscribe_gate: asyncio.Event | None = None
    token: str | None = None
    open_calls: int = 0
    close_calls: int = 0
    is_open: bool = False
    active: set[str] = field(default_factory=set)
    subscribe_calls: list[str] = field(default_factory=list)
    unsubscribe_calls: list[str] = field(default_factory=list)
    published: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    _queue: asyncio.Queue[Any] | None = None

    def set_token(self, token: str | None) -> None:
        self.token = token

    async def open(self) -> None:
        self.open_calls += 1
        if self.open_delay:
            await asyncio.sleep(self.open_delay)
        if self.fail_open is not None:
            raise self.fail_open
        self.is_open = True
        self._queue = asyncio.Queue()

    async def close(self) -> None:
        self.close_calls += 1
        if self._queue is not None:
            self._queue.put_nowait(_CLOSED)
        self._queue = None
        self.is_open = False
        self.active.clear()

    async def subscribe(self, channel: str) -> None:
        if self.subscribe_gate is not None:
            await self.subscribe_gate.wait()
        self.subscribe_calls.append(channel)
        self.active.add(channel)

    async def unsubscribe(self, channel: str) -> None:
        self.unsubscribe_calls.append(channel)
        self.active.discard(channel)

    async def publish(self, destination: str, payload: dict[str, Any]) -> None:
        self.published.append((destination, payload))

    async def frames(self) -> AsyncIterator[tuple[str, dict[str, Any]]]:
        queue = self._queue
        assert queue is not None, "transport not open"
        while True:
            item = await queue.get()
            if item is _CLOSED:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    def push(self, channel: str, payload: dict[str, Any]) -> None:
        assert self._queue is not None, "transport not open"
        self._queue.put_nowait((channel, payload))

    def drop(self, error: Exception | None = None) -> None:
        """Simulate the server closing (or breaking) the link."""
        assert self._queue is not None, "transport not open"
        self._queue.put_nowait(error if error is not None else _CLOSED)


@dataclass
class FakeChatApi:
    conversations: list[Conversation] = field(default_factory=list)
    history: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    gates: dict[str, asyncio.Event] = field(default_factory=dict)
    fail_conversations: bool = False
    fail_history: set[str] = field(default_factory=set)
    fail_send: bool = False
    token: str | None = None
    history_calls: list[str] = field(default_factory=list)
    sent: list[Message] = field(default_factory=list)
    next_id: int = 100
    closed: bool = False

    def set_token(self, token: str | None) -> None:
        self.token = token

    async def list_conversations(self, user_id: int) -> list[Conversation]:
        if self.fail_conversations:
            raise FetchError("conversations unavailable")
        return list(self.conversations)

    async def list_messages(self, conversation_id: str) -> list[Message]:
        self.history_calls.append(conversation_id)
        gate = self.gates.get(conversation_id)
        if gate is not None:
            await gate.wait()
        if conversation_id in self.fail_history:
            raise FetchError(f"history unavailable for {conversation_id}")
        return [
            normalize(raw, fallback_room_id=conversation_id)
            for raw in self.history.get(conversation_id, [])
        ]

    async def send_message(self, sender_id: int, receiver_id: int, text: str) -> Message:
        if self.fail_send:
            raise SendError("POST /api/chat/messages returned 500")
        self.next_id += 1
        raw = {
            "id": self.next_id,
            "senderId": sender_id,
            "receiverId": receiver_id,
            "text": text,
            "sentAt": "2024-05-01T10:00:00Z",
        }
        room = conversation_id_for(sender_id, receiver_id)
        self.history.setdefault(room, []).append(raw)
        message = normalize(raw)
        self.sent.append(message)
        return message

    async def aclose(self) -> None:
        self.closed = True


@dataclass
class RecordingNotifier:
    notifications: list[Notification] = field(default_factory=list)
    fail: bool = False

    async def notify(self, notification: Notification) -> None:
        if self.fail:
            raise RuntimeError("notifier down")
        self.notifications.append(notification)


@dataclass
class FixedClock:
    at: datetime = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self.at
