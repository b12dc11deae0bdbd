from __future__ import annotations

import asyncio
import logging
from typing import Callable

from fixitnow_chat.application.dto.principal import CurrentUser
from fixitnow_chat.services.chat_service import ChatService

logger = logging.getLogger(__name__)

ChatServiceFactory = Callable[[str], ChatService]


class SessionRegistry:
    """One ChatService per logged-in user, created on first use.

    The most recent bearer token a user presents is handed to their
    service so backend calls keep working after a token refresh.
    """

    def __init__(self, factory: ChatServiceFactory) -> None:
        self._factory = factory
        self._services: dict[int, ChatService] = {}
        self._tokens: dict[int, str] = {}
        self._ready: dict[int, asyncio.Future[None]] = {}

    def __len__(self) -> int:
        return len(self._services)

    def get(self, user_id: int) -> ChatService | None:
        return self._services.get(user_id)

    async def get_or_create(self, user: CurrentUser, token: str) -> ChatService:
        """Return the user's service, building and initializing it on first sight."""
        service = self._services.get(user.id)
        if service is None:
            service = self._factory(token)
            self._services[user.id] = service
            self._tokens[user.id] = token
            self._ready[user.id] = asyncio.ensure_future(service.on_user_changed(user))
            logger.info("Chat session created for user %s", user.id)
        elif self._tokens.get(user.id) != token:
            service.update_token(token)
            self._tokens[user.id] = token
            logger.debug("Refreshed bearer token for user %s", user.id)
        await asyncio.shield(self._ready[user.id])
        return service

    async def logout(self, user_id: int) -> bool:
        service = self._services.pop(user_id, None)
        ready = self._ready.pop(user_id, None)
        self._tokens.pop(user_id, None)
        if service is None:
            return False
        if ready is not None and not ready.done():
            await asyncio.wait([ready])
        await service.aclose()
        logger.info("Chat session closed for user %s", user_id)
        return True

    async def close_all(self) -> None:
        for user_id in list(self._services):
            try:
                await self.logout(user_id)
            except Exception:
                logger.exception("Failed to close chat session for user %s", user_id)
