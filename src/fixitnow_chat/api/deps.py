"""FastAPI dependency injection helpers."""
from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from fixitnow_chat.application.dto.principal import CurrentUser
from fixitnow_chat.application.ports.auth import TokenVerifier
from fixitnow_chat.container import build_verifier
from fixitnow_chat.services.chat_service import ChatService
from fixitnow_chat.services.session_registry import SessionRegistry

_bearer_scheme = HTTPBearer()

BearerCredentials = Annotated[HTTPAuthorizationCredentials, Depends(_bearer_scheme)]

_verifier: TokenVerifier | None = None


def get_verifier() -> TokenVerifier:
    global _verifier  # noqa: PLW0603
    if _verifier is None:
        _verifier = build_verifier()
    return _verifier


async def get_current_user(credentials: BearerCredentials) -> CurrentUser:
    verifier = get_verifier()
    try:
        return await verifier.verify(credentials.credentials)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


CurrentUserDep = Annotated[CurrentUser, Depends(get_current_user)]


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


RegistryDep = Annotated[SessionRegistry, Depends(get_registry)]


async def get_chat(
    user: CurrentUserDep,
    credentials: BearerCredentials,
    registry: RegistryDep,
) -> ChatService:
    return await registry.get_or_create(user, credentials.credentials)


ChatDep = Annotated[ChatService, Depends(get_chat)]
