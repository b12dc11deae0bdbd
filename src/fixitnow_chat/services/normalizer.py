"""Boundary between loosely-shaped wire payloads and the typed chat entities.

Every inbound message (live frame or history item) and every conversation
summary passes through here before it reaches the store or the active
session. These functions never raise: malformed input degrades to a
best-effort entity with empty optional fields.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from fixitnow_chat.application.ports.clock import utc_now
from fixitnow_chat.domain.entities.conversation import Conversation
from fixitnow_chat.domain.entities.message import Message
from fixitnow_chat.domain.value_objects.ids import coerce_user_id, try_conversation_id_for

logger = logging.getLogger(__name__)

_MESSAGE_FIELDS = frozenset({
    "id",
    "senderId",
    "receiverId",
    "text",
    "content",
    "roomId",
    "sentAt",
    "createdAt",
    "senderName",
    "receiverName",
    "clientMsgId",
})

# Anything above this is treated as epoch milliseconds.
_EPOCH_MILLIS_THRESHOLD = 100_000_000_000


def normalize(
    raw: Any,
    *,
    fallback_room_id: str | None = None,
    now: datetime | None = None,
) -> Message:
    """Turn a raw wire message into a canonical ``Message``.

    ``text`` is coalesced from ``text`` or ``content``. ``room_id`` is the
    wire ``roomId``, else ``fallback_room_id``, else derived from the two
    participant ids; it stays None when none of those is available.
    """
    if not isinstance(raw, Mapping):
        logger.debug("Normalizing non-mapping message payload: %r", type(raw))
        raw = {}
    now = now or utc_now()

    sender_id = _coerce_id(raw.get("senderId"))
    receiver_id = _coerce_id(raw.get("receiverId"))

    room_id = _as_text(raw.get("roomId")) or fallback_room_id
    if room_id is None:
        room_id = try_conversation_id_for(sender_id, receiver_id)

    sent_at = raw.get("sentAt")
    if sent_at is None:
        sent_at = raw.get("createdAt")

    return Message(
        id=_coerce_id(raw.get("id")),
        sender_id=sender_id,
        receiver_id=receiver_id,
        text=_first_text(raw.get("text"), raw.get("content")),
        room_id=room_id,
        sent_at=parse_timestamp(sent_at, now),
        sender_name=_as_text(raw.get("senderName")),
        receiver_name=_as_text(raw.get("receiverName")),
        client_msg_id=_as_uuid(raw.get("clientMsgId")),
        extra={k: v for k, v in raw.items() if k not in _MESSAGE_FIELDS},
    )


def normalize_conversation(raw: Any, *, now: datetime | None = None) -> Conversation | None:
    """Build a ``Conversation`` from a server summary. Returns None without an id."""
    if not isinstance(raw, Mapping):
        return None
    conversation_id = _as_text(raw.get("id"))
    if conversation_id is None:
        return None

    last_time = raw.get("lastMessageTime")
    unread = coerce_user_id(raw.get("unreadCount"))
    return Conversation(
        id=conversation_id,
        other_user_id=coerce_user_id(raw.get("otherUserId")),
        other_user_name=_as_text(raw.get("otherUserName")),
        last_message_text=_as_text(raw.get("lastMessageText")),
        last_message_time=None if last_time is None else parse_timestamp(last_time, now),
        last_message_sender=_as_text(raw.get("lastMessageSender")),
        unread_count=max(unread or 0, 0),
    )


def parse_timestamp(value: Any, now: datetime | None = None) -> datetime:
    """Parse ISO strings, epoch numbers, Jackson date arrays or datetimes.

    Falls back to ``now`` (or the current UTC time) for anything else.
    """
    fallback = now or utc_now()
    if value is None or isinstance(value, bool):
        return fallback
    if isinstance(value, datetime):
        return _aware(value)
    if isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) >= _EPOCH_MILLIS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return fallback
    if isinstance(value, str):
        try:
            return _aware(datetime.fromisoformat(value.strip()))
        except ValueError:
            return fallback
    if isinstance(value, (list, tuple)) and 3 <= len(value) <= 7:
        # [year, month, day, hour, minute, second, nanos]
        try:
            parts = [int(p) for p in value]
            nanos = parts[6] if len(parts) == 7 else 0
            return datetime(*parts[:6], microsecond=nanos // 1000, tzinfo=timezone.utc)
        except (TypeError, ValueError):
            return fallback
    return fallback


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _coerce_id(value: Any) -> int | str | None:
    coerced = coerce_user_id(value)
    if coerced is not None:
        return coerced
    return _as_text(value)


def _as_text(value: Any) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value if value.strip() else None
    if isinstance(value, int):
        return str(value)
    return None


def _first_text(*candidates: Any) -> str | None:
    for candidate in candidates:
        if isinstance(candidate, str) and candidate:
            return candidate
    return None


def _as_uuid(value: Any) -> UUID | None:
    if isinstance(value, UUID):
        return value
    if isinstance(value, str):
        try:
            return UUID(value)
        except ValueError:
            return None
    return None
