from __future__ import annotations

import logging

from fixitnow_chat.application.dto.notification import Notification
from fixitnow_chat.application.ports.notifier import Notifier
from fixitnow_chat.domain.entities.message import Message

logger = logging.getLogger(__name__)

UNKNOWN_SENDER = "someone"


class NotificationDispatcher:
    """Decides whether an inbound message should surface as a notification."""

    def __init__(self, notifier: Notifier, current_user_id: int) -> None:
        self._notifier = notifier
        self._current_user_id = current_user_id

    def should_notify(
        self,
        message: Message,
        *,
        chat_open: bool,
        active_conversation_id: str | None,
    ) -> bool:
        if message.sender_id == self._current_user_id:
            return False
        if not chat_open:
            return True
        # Suppressed only when the message is already on screen.
        return message.room_id is None or message.room_id != active_conversation_id

    async def dispatch(
        self,
        message: Message,
        *,
        chat_open: bool,
        active_conversation_id: str | None,
    ) -> bool:
        if not self.should_notify(
            message, chat_open=chat_open, active_conversation_id=active_conversation_id,
        ):
            return False

        notification = Notification(
            title=f"New message from {message.sender_name or UNKNOWN_SENDER}",
            body=message.text,
            conversation_id=message.room_id,
            sender_id=message.sender_id,
        )
        try:
            await self._notifier.notify(notification)
        except Exception:
            logger.exception("Notifier failed for message id=%s", message.id)
            return False
        return True
