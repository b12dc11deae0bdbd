from __future__ import annotations

from typing import Any, NewType

ConversationId = NewType("ConversationId", str)

CONVERSATION_ID_SEPARATOR = "-"


def coerce_user_id(value: Any) -> int | None:
    """Return ``value`` as an int user id, or None if it is not integer-like."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def conversation_id_for(user_a: Any, user_b: Any) -> ConversationId:
    """Canonical 1:1 conversation id: both participants compute the same string.

    Raises ValueError if either id is not integer-like.
    """
    a = coerce_user_id(user_a)
    b = coerce_user_id(user_b)
    if a is None or b is None:
        raise ValueError(f"cannot derive conversation id from {user_a!r} and {user_b!r}")
    low, high = sorted((a, b))
    return ConversationId(f"{low}{CONVERSATION_ID_SEPARATOR}{high}")


def try_conversation_id_for(user_a: Any, user_b: Any) -> ConversationId | None:
    try:
        return conversation_id_for(user_a, user_b)
    except ValueError:
        return None
