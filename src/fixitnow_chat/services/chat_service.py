"""Per-user chat orchestration: connection lifecycle, store, active session, alerts."""
from __future__ import annotations

import dataclasses
import logging
import uuid
from typing import Any, Callable

from fixitnow_chat.application.dto.principal import CurrentUser
from fixitnow_chat.application.dto.state import ChatState
from fixitnow_chat.application.exceptions import (
    ChatConnectionError,
    FetchError,
    NotAuthenticatedError,
    NotFoundError,
    SendError,
    ValidationError,
)
from fixitnow_chat.application.ports.chat_api import ChatApi
from fixitnow_chat.application.ports.clock import Clock, SystemClock
from fixitnow_chat.application.ports.notifier import Notifier
from fixitnow_chat.domain.entities.conversation import Conversation
from fixitnow_chat.domain.entities.message import Message
from fixitnow_chat.domain.value_objects.ids import coerce_user_id, conversation_id_for
from fixitnow_chat.infrastructure.ws.manager import ConnectionManager, Subscription
from fixitnow_chat.services.active_session import ActiveConversationSession
from fixitnow_chat.services.conversation_store import ConversationStore
from fixitnow_chat.services.events import STATE_UPDATED, EventHub, EventListener, HubNotifier
from fixitnow_chat.services.normalizer import normalize
from fixitnow_chat.services.notification_dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)

ADMIN_DISPLAY_NAME = "Admin Support"


class ChatService:
    """Chat state for one authenticated user.

    The connection follows the auth lifecycle: ``on_user_changed(user)``
    connects and loads conversations, ``on_user_changed(None)`` tears
    everything down. Connection failures are non-fatal; the conversation
    list and history still work over REST.
    """

    def __init__(
        self,
        *,
        connection: ConnectionManager,
        api: ChatApi,
        user_channel: Callable[[int], str],
        conversation_topic: Callable[[str], str],
        admin_user_id: int = 1,
        notifier: Notifier | None = None,
        clock: Clock | None = None,
        hub: EventHub | None = None,
    ) -> None:
        self._connection = connection
        self._api = api
        self._user_channel = user_channel
        self._admin_user_id = admin_user_id
        self._clock = clock or SystemClock()
        self._hub = hub or EventHub()
        self._notifier = notifier or HubNotifier(self._hub)

        self._user: CurrentUser | None = None
        self._store: ConversationStore | None = None
        self._dispatcher: NotificationDispatcher | None = None
        self._notification_sub: Subscription | None = None
        self._chat_open = False

        self._session = ActiveConversationSession(
            connection,
            api,
            topic_for=conversation_topic,
            on_frame=self.handle_new_message,
            on_opened=self._on_conversation_opened,
            on_change=self._emit_state,
        )

    # -- reactive reads --------------------------------------------------

    @property
    def user(self) -> CurrentUser | None:
        return self._user

    @property
    def is_connected(self) -> bool:
        return self._connection.is_connected

    @property
    def is_chat_open(self) -> bool:
        return self._chat_open

    @property
    def conversations(self) -> tuple[Conversation, ...]:
        return self._store.conversations if self._store else ()

    @property
    def selected_conversation(self) -> Conversation | None:
        selected = self._session.selected
        if selected is None or self._store is None:
            return selected
        return self._store.get(selected.id) or selected

    @property
    def messages(self) -> tuple[Message, ...]:
        return self._session.messages

    @property
    def loading(self) -> bool:
        return self._session.loading

    @property
    def total_unread_count(self) -> int:
        return self._store.total_unread_count if self._store else 0

    def snapshot(self) -> ChatState:
        return ChatState(
            conversations=self.conversations,
            selected_conversation=self.selected_conversation,
            messages=self.messages,
            is_chat_open=self._chat_open,
            is_connected=self.is_connected,
            loading=self.loading,
            total_unread_count=self.total_unread_count,
        )

    def add_listener(self, listener: EventListener) -> Callable[[], None]:
        return self._hub.add_listener(listener)

    # -- auth lifecycle --------------------------------------------------

    async def on_user_changed(self, user: CurrentUser | None) -> None:
        if user is None:
            await self.shutdown()
            self._user = None
            self._store = None
            self._dispatcher = None
            self._emit_state()
            return

        if self._user is not None and self._user.id == user.id:
            self._user = user
            return

        await self.shutdown()
        self._user = user
        self._store = ConversationStore(user)
        self._store.add_listener(self._emit_state)
        self._dispatcher = NotificationDispatcher(self._notifier, user.id)
        await self.initialize()

    async def initialize(self) -> None:
        """Connect for live updates, then load the conversation list."""
        self._require_user()
        await self._connection.connect(
            on_open=self._on_connected,
            on_error=self._on_connection_error,
        )
        try:
            await self.load_conversations()
        except FetchError as exc:
            logger.warning("Failed to load conversations: %s", exc.detail)

    async def reconnect(self) -> bool:
        """Re-establish live updates after a connection error."""
        self._require_user()
        if self.is_connected:
            return False
        connected = await self._connection.connect(
            on_open=self._on_connected,
            on_error=self._on_connection_error,
        )
        selected = self._session.selected
        if connected and selected is not None:
            await self._session.open(selected)
        return connected

    async def shutdown(self) -> None:
        await self._session.close()
        subscription, self._notification_sub = self._notification_sub, None
        if subscription is not None:
            await subscription.unsubscribe()
        await self._connection.disconnect()
        self._chat_open = False
        self._emit_state()

    def update_token(self, token: str) -> None:
        """Swap in a refreshed bearer token for REST calls and the next connect."""
        self._api.set_token(token)
        self._connection.set_token(token)

    async def aclose(self) -> None:
        await self.on_user_changed(None)
        await self._api.aclose()

    # -- outward operations ----------------------------------------------

    async def load_conversations(self) -> tuple[Conversation, ...]:
        user = self._require_user()
        store = self._require_store()
        conversations = await self._api.list_conversations(user.id)
        store.load(conversations)
        logger.debug("Loaded %d conversations for user %s", len(conversations), user.id)
        return store.conversations

    async def open_conversation(self, conversation: Conversation | str) -> Conversation:
        store = self._require_store()
        if isinstance(conversation, str):
            found = store.get(conversation)
            if found is None:
                raise NotFoundError(f"Conversation {conversation} not found")
            conversation = found
        await self._session.open(conversation)
        return store.get(conversation.id) or conversation

    async def close_conversation(self) -> None:
        await self._session.close()

    async def send_message(self, receiver_id: int, text: str) -> Message:
        """Send ``text`` to ``receiver_id``.

        The message shows up in the open conversation immediately as a
        pending entry and is reconciled with the server copy (or its live
        echo, whichever comes first). Raises SendError on failure.
        """
        user = self._require_user()
        store = self._require_store()
        body = (text or "").strip()
        if not body:
            raise ValidationError("Message text must not be empty")
        receiver = coerce_user_id(receiver_id)
        if receiver is None:
            raise ValidationError(f"Invalid receiver id: {receiver_id!r}")

        room_id = conversation_id_for(user.id, receiver)
        client_msg_id = uuid.uuid4()
        self._session.add_pending(Message(
            id=None,
            sender_id=user.id,
            receiver_id=receiver,
            text=body,
            room_id=room_id,
            sent_at=self._clock.now(),
            sender_name=user.name,
            client_msg_id=client_msg_id,
            pending=True,
        ))

        try:
            sent = await self._api.send_message(user.id, receiver, body)
        except SendError as exc:
            self._session.discard_pending(client_msg_id)
            logger.warning("Failed to send message to %s: %s", receiver, exc.detail)
            raise

        if sent.room_id is None:
            sent = dataclasses.replace(sent, room_id=room_id)
        self._session.reconcile_sent(client_msg_id, sent)
        if store.apply_local_send(receiver, body, sender_name=user.name, now=sent.sent_at) is None:
            store.apply_inbound_message(sent)
        return sent

    async def start_conversation(
        self,
        other_user_id: int,
        initial_message: str | None = None,
        other_user_name: str | None = None,
    ) -> Conversation:
        store = self._require_store()
        conversation, created = store.start_conversation(other_user_id, other_user_name)
        if created:
            logger.info("Started new conversation %s", conversation.id)

        self._chat_open = True
        try:
            await self._session.open(conversation)
        except FetchError as exc:
            # A brand-new thread may have no history endpoint yet.
            logger.warning("History unavailable for %s: %s", conversation.id, exc.detail)

        if initial_message:
            await self.send_message(conversation.other_user_id, initial_message)
        return store.get(conversation.id) or conversation

    async def start_admin_conversation(self, initial_message: str | None = None) -> Conversation:
        return await self.start_conversation(
            self._admin_user_id, initial_message, other_user_name=ADMIN_DISPLAY_NAME,
        )

    def toggle_chat(self) -> bool:
        self._chat_open = not self._chat_open
        self._emit_state()
        return self._chat_open

    async def close_chat(self) -> None:
        self._chat_open = False
        await self._session.close()

    # -- inbound path ----------------------------------------------------

    async def handle_new_message(self, raw: dict[str, Any]) -> None:
        """Route one inbound frame: active session, store, then notification."""
        user, store, dispatcher = self._user, self._store, self._dispatcher
        if user is None or store is None or dispatcher is None:
            return

        message = normalize(raw, now=self._clock.now())
        logger.debug("Inbound message id=%s room=%s", message.id, message.room_id)

        duplicate = store.has_seen(message.id)
        appended = self._session.apply_inbound(message)
        store.apply_inbound_message(message)
        if appended and self._chat_open and message.sender_id != user.id:
            await self._mark_read(message.room_id)

        if duplicate:
            logger.debug("Repeat delivery of message id=%s; not notifying", message.id)
            return
        await dispatcher.dispatch(
            message,
            chat_open=self._chat_open,
            active_conversation_id=self._session.conversation_id,
        )

    # -- internals -------------------------------------------------------

    async def _on_connected(self) -> None:
        user = self._require_user()
        self._notification_sub = await self._connection.subscribe(
            self._user_channel(user.id), self.handle_new_message,
        )
        self._emit_state()

    async def _on_connection_error(self, error: ChatConnectionError) -> None:
        self._notification_sub = None
        logger.info("Live chat updates unavailable: %s", error.detail)
        self._emit_state()

    async def _on_conversation_opened(self, conversation: Conversation) -> None:
        await self._mark_read(conversation.id)

    async def _mark_read(self, conversation_id: str | None) -> None:
        if conversation_id is None or self._user is None or self._store is None:
            return
        if not self.is_connected:
            return
        await self._connection.mark_as_read(conversation_id, self._user.id)
        self._store.mark_read(conversation_id)

    def _emit_state(self) -> None:
        self._hub.emit(STATE_UPDATED, self.snapshot())

    def _require_user(self) -> CurrentUser:
        if self._user is None:
            raise NotAuthenticatedError("No authenticated user")
        return self._user

    def _require_store(self) -> ConversationStore:
        self._require_user()
        assert self._store is not None
        return self._store
