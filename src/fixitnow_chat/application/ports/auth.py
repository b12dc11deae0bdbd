from __future__ import annotations

from typing import Protocol

from fixitnow_chat.application.dto.principal import CurrentUser


class TokenVerifier(Protocol):
    async def verify(self, token: str) -> CurrentUser: ...
