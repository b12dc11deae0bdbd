"""The conversation currently open in the UI and its live message list."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine
from uuid import UUID

from fixitnow_chat.application.exceptions import FetchError
from fixitnow_chat.application.ports.chat_api import ChatApi
from fixitnow_chat.domain.entities.conversation import Conversation
from fixitnow_chat.domain.entities.message import Message
from fixitnow_chat.infrastructure.ws.manager import ConnectionManager, FrameHandler, Subscription

logger = logging.getLogger(__name__)

OpenedCallback = Callable[[Conversation], Coroutine[Any, Any, None]]


class ActiveConversationSession:
    """Tracks the open conversation, its messages and its topic subscription.

    Only one topic subscription exists at a time; switching conversations
    cancels the previous one before subscribing to the next. History
    responses that arrive after another ``open`` call are discarded.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        api: ChatApi,
        *,
        topic_for: Callable[[str], str],
        on_frame: FrameHandler,
        on_opened: OpenedCallback | None = None,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._connection = connection
        self._api = api
        self._topic_for = topic_for
        self._on_frame = on_frame
        self._on_opened = on_opened
        self._on_change = on_change or (lambda: None)

        self._selected: Conversation | None = None
        self._messages: list[Message] = []
        self._loading = False
        self._subscriptions: dict[str, Subscription] = {}
        self._open_seq = 0
        self._switch_lock = asyncio.Lock()

    @property
    def selected(self) -> Conversation | None:
        return self._selected

    @property
    def conversation_id(self) -> str | None:
        return self._selected.id if self._selected else None

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def subscribed_conversations(self) -> list[str]:
        return list(self._subscriptions)

    async def open(self, conversation: Conversation) -> None:
        """Select ``conversation``, subscribe to its topic and load its history.

        Raises FetchError if the history fetch for this (still current)
        conversation fails; the selection and subscription stay in place.
        """
        self._open_seq += 1
        seq = self._open_seq
        self._selected = conversation
        self._messages = []
        self._loading = True
        self._on_change()

        async with self._switch_lock:
            if seq != self._open_seq:
                return
            await self._switch_subscription(conversation.id)
        if seq != self._open_seq:
            logger.debug("Open of %s superseded during subscription switch", conversation.id)
            return

        if self._on_opened is not None:
            await self._on_opened(conversation)

        try:
            history = await self._api.list_messages(conversation.id)
        except FetchError:
            if seq != self._open_seq:
                logger.debug("Ignoring failed history fetch for stale %s", conversation.id)
                return
            self._loading = False
            self._on_change()
            logger.warning("Failed to load messages for %s", conversation.id)
            raise

        if seq != self._open_seq:
            logger.debug("Discarding stale history for %s", conversation.id)
            return

        self._messages = _merge(history, self._messages)
        self._loading = False
        self._on_change()

    async def close(self) -> None:
        self._open_seq += 1
        self._selected = None
        self._messages = []
        self._loading = False
        async with self._switch_lock:
            await self._cancel_subscriptions()
        self._on_change()

    def apply_inbound(self, message: Message) -> bool:
        """Append a live message if it belongs here and is not already listed."""
        if self._selected is None or message.room_id != self._selected.id:
            return False

        if message.client_msg_id is not None:
            for i, existing in enumerate(self._messages):
                if existing.pending and existing.client_msg_id == message.client_msg_id:
                    self._messages[i] = message
                    self._on_change()
                    return True

        if message.id is not None and self._contains(message.id):
            return False
        self._messages.append(message)
        self._on_change()
        return True

    def add_pending(self, message: Message) -> bool:
        if self._selected is None or message.room_id != self._selected.id:
            return False
        self._messages.append(message)
        self._on_change()
        return True

    def reconcile_sent(self, client_msg_id: UUID, message: Message) -> None:
        """Replace the pending entry for ``client_msg_id`` with the server copy.

        If the echo already delivered the message the pending entry is
        dropped instead. A send for the open conversation with no pending
        entry (the conversation was switched and back) is appended.
        """
        index = self._pending_index(client_msg_id)
        already_listed = message.id is not None and self._contains(message.id)
        if index is not None:
            if already_listed:
                del self._messages[index]
            else:
                self._messages[index] = message
            self._on_change()
            return
        if not already_listed:
            self.apply_inbound(message)

    def discard_pending(self, client_msg_id: UUID) -> None:
        index = self._pending_index(client_msg_id)
        if index is not None:
            del self._messages[index]
            self._on_change()

    # -- internals -------------------------------------------------------

    async def _switch_subscription(self, conversation_id: str) -> None:
        if conversation_id in self._subscriptions and self._subscriptions[conversation_id].active:
            return
        await self._cancel_subscriptions()
        self._subscriptions[conversation_id] = await self._connection.subscribe(
            self._topic_for(conversation_id), self._on_frame,
        )

    async def _cancel_subscriptions(self) -> None:
        subscriptions, self._subscriptions = self._subscriptions, {}
        for subscription in subscriptions.values():
            await subscription.unsubscribe()

    def _contains(self, message_id: int | str) -> bool:
        return any(m.id == message_id for m in self._messages)

    def _pending_index(self, client_msg_id: UUID) -> int | None:
        for i, message in enumerate(self._messages):
            if message.pending and message.client_msg_id == client_msg_id:
                return i
        return None


def _merge(history: list[Message], live: list[Message]) -> list[Message]:
    """History first, then live/pending messages the fetch did not include."""
    merged: list[Message] = []
    seen: set[int | str] = set()
    for message in history:
        if message.id is not None:
            if message.id in seen:
                continue
            seen.add(message.id)
        merged.append(message)
    for message in live:
        if message.id is None or message.id not in seen:
            merged.append(message)
            if message.id is not None:
                seen.add(message.id)
    return merged
