from __future__ import annotations

from typing import Protocol

from fixitnow_chat.application.dto.notification import Notification


class Notifier(Protocol):
    async def notify(self, notification: Notification) -> None: ...
