"""In-process fan-out of chat events to UI listeners."""
from __future__ import annotations

import dataclasses
import logging
from typing import Any, Callable

from fixitnow_chat.application.dto.notification import Notification

logger = logging.getLogger(__name__)

EventListener = Callable[[str, Any], None]

STATE_UPDATED = "state.updated"
NOTIFICATION = "notification"


class EventHub:
    def __init__(self) -> None:
        self._listeners: list[EventListener] = []

    def add_listener(self, listener: EventListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def emit(self, event_type: str, data: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(event_type, data)
            except Exception:
                logger.exception("Listener failed for %s", event_type)


class HubNotifier:
    """Implements application.ports.notifier.Notifier by logging and emitting on a hub."""

    def __init__(self, hub: EventHub) -> None:
        self._hub = hub

    async def notify(self, notification: Notification) -> None:
        logger.info("%s (conversation=%s)", notification.title, notification.conversation_id)
        self._hub.emit(NOTIFICATION, dataclasses.asdict(notification))
