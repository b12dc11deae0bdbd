"""In-memory conversation list: the single owner of summaries and unread counts."""
from __future__ import annotations

import dataclasses
import logging
from collections import deque
from datetime import datetime
from typing import Callable

from fixitnow_chat.application.dto.principal import CurrentUser
from fixitnow_chat.application.exceptions import ValidationError
from fixitnow_chat.application.ports.clock import utc_now
from fixitnow_chat.domain.entities.conversation import Conversation
from fixitnow_chat.domain.entities.message import Message
from fixitnow_chat.domain.value_objects.ids import coerce_user_id, try_conversation_id_for

logger = logging.getLogger(__name__)

ChangeListener = Callable[[], None]

# Bound on remembered message ids used to ignore duplicate deliveries.
_SEEN_IDS_LIMIT = 1000


class ConversationStore:
    """Conversation summaries for one authenticated user.

    All mutation goes through the methods below; each one notifies the
    registered change listeners after the list has been updated.
    """

    def __init__(self, current_user: CurrentUser) -> None:
        self._user = current_user
        self._conversations: list[Conversation] = []
        self._listeners: list[ChangeListener] = []
        self._seen_ids: deque[int | str] = deque(maxlen=_SEEN_IDS_LIMIT)

    @property
    def conversations(self) -> tuple[Conversation, ...]:
        return tuple(self._conversations)

    @property
    def total_unread_count(self) -> int:
        return sum(c.unread_count for c in self._conversations)

    def get(self, conversation_id: str) -> Conversation | None:
        for conv in self._conversations:
            if conv.id == conversation_id:
                return conv
        return None

    def find_with_user(self, other_user_id: int) -> Conversation | None:
        canonical = try_conversation_id_for(self._user.id, other_user_id)
        for conv in self._conversations:
            if conv.other_user_id == other_user_id or conv.id == canonical:
                return conv
        return None

    def has_seen(self, message_id: int | str | None) -> bool:
        """True if a message with this id was already folded into the list."""
        return message_id is not None and message_id in self._seen_ids

    def add_listener(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    # -- mutations -------------------------------------------------------

    def load(self, conversations: list[Conversation]) -> None:
        """Replace the list with a server snapshot, keeping the first of any duplicate ids."""
        seen: set[str] = set()
        loaded: list[Conversation] = []
        for conv in conversations:
            if conv.id in seen:
                continue
            seen.add(conv.id)
            loaded.append(conv)
        self._conversations = loaded
        self._changed()

    def apply_inbound_message(self, message: Message) -> Conversation | None:
        """Fold an inbound message into its conversation summary.

        Returns the updated (or newly created placeholder) conversation, or
        None when the message cannot be attributed to any conversation.
        """
        room_id = message.room_id
        if room_id is None:
            logger.debug("Dropping unattributable message id=%s", message.id)
            return None

        from_self = message.sender_id == self._user.id
        duplicate = self._remember(message.id)
        increment = 0 if from_self or duplicate else 1
        sender_label = message.sender_name or _label(message.sender_id)

        index = self._index_of(room_id)
        if index is not None:
            conv = self._conversations[index]
            updated = dataclasses.replace(
                conv,
                last_message_text=message.text,
                last_message_time=message.sent_at,
                last_message_sender=sender_label,
                unread_count=conv.unread_count + increment,
            )
            self._conversations[index] = updated
            self._changed()
            return updated

        if from_self:
            other_user_id, other_name = message.receiver_id, message.receiver_name
        else:
            other_user_id, other_name = message.sender_id, message.sender_name
        other_user_id = coerce_user_id(other_user_id)
        if other_user_id is None:
            logger.debug("No counterparty for message id=%s in room %s", message.id, room_id)
            return None

        placeholder = Conversation(
            id=room_id,
            other_user_id=other_user_id,
            other_user_name=other_name or f"User {other_user_id}",
            last_message_text=message.text,
            last_message_time=message.sent_at,
            last_message_sender=sender_label,
            unread_count=increment,
        )
        self._conversations.insert(0, placeholder)
        logger.info("Created placeholder conversation %s", room_id)
        self._changed()
        return placeholder

    def apply_local_send(
        self,
        receiver_id: int,
        text: str,
        *,
        sender_name: str | None = None,
        now: datetime | None = None,
    ) -> Conversation | None:
        """Update the preview after the current user sent ``text``. Never touches unread."""
        conversation_id = try_conversation_id_for(self._user.id, receiver_id)
        index = None if conversation_id is None else self._index_of(conversation_id)
        if index is None:
            return None
        updated = dataclasses.replace(
            self._conversations[index],
            last_message_text=text,
            last_message_time=now or utc_now(),
            last_message_sender=sender_name or self._user.display_name,
        )
        self._conversations[index] = updated
        self._changed()
        return updated

    def mark_read(self, conversation_id: str) -> bool:
        index = self._index_of(conversation_id)
        if index is None:
            return False
        conv = self._conversations[index]
        if conv.unread_count:
            self._conversations[index] = dataclasses.replace(conv, unread_count=0)
            self._changed()
        return True

    def start_conversation(
        self,
        other_user_id: int,
        display_name: str | None = None,
    ) -> tuple[Conversation, bool]:
        """Return (conversation, created): reuse an existing thread or synthesize an empty one."""
        other = coerce_user_id(other_user_id)
        if other is None:
            raise ValidationError(f"Invalid user id: {other_user_id!r}")
        if other == self._user.id:
            raise ValidationError("Cannot start a conversation with yourself")

        existing = self.find_with_user(other)
        if existing is not None:
            return existing, False

        conversation = Conversation(
            id=try_conversation_id_for(self._user.id, other),
            other_user_id=other,
            other_user_name=display_name or f"User {other}",
        )
        self._conversations.insert(0, conversation)
        self._changed()
        return conversation, True

    # -- internals -------------------------------------------------------

    def _index_of(self, conversation_id: str) -> int | None:
        for i, conv in enumerate(self._conversations):
            if conv.id == conversation_id:
                return i
        return None

    def _remember(self, message_id: int | str | None) -> bool:
        """Record ``message_id``; True if it was already seen."""
        if message_id is None:
            return False
        if message_id in self._seen_ids:
            return True
        self._seen_ids.append(message_id)
        return False

    def _changed(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Conversation store listener failed")


def _label(sender_id: int | str | None) -> str | None:
    return None if sender_id is None else str(sender_id)
