from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fixitnow_chat.api.middleware.request_context import RequestContextMiddleware
from fixitnow_chat.api.v1.routers import chat, health, ws
from fixitnow_chat.application.exceptions import (
    AppError,
    ChatConnectionError,
    FetchError,
    NotAuthenticatedError,
    NotFoundError,
    ValidationError,
)
from fixitnow_chat.config import settings
from fixitnow_chat.container import build_chat_service
from fixitnow_chat.services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)


def create_app(registry: SessionRegistry | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Startup / shutdown lifecycle."""
        app.state.registry = registry or SessionRegistry(build_chat_service)
        logger.info("Chat session registry ready (transport=%s)", settings.CHAT_TRANSPORT)

        yield

        await app.state.registry.close_all()
        logger.info("Chat sessions closed")

    app = FastAPI(
        title="FixItNow Chat",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(chat.router)
    app.include_router(ws.router)

    return app


_STATUS_BY_ERROR: list[tuple[type[AppError], int]] = [
    (NotFoundError, 404),
    (NotAuthenticatedError, 401),
    (ValidationError, 422),
    (ChatConnectionError, 503),
    (FetchError, 502),
]


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def _app_error(_req: Request, exc: AppError) -> JSONResponse:
        for error_type, status_code in _STATUS_BY_ERROR:
            if isinstance(exc, error_type):
                return JSONResponse(status_code=status_code, content={"detail": exc.detail})
        logger.error("Unmapped application error: %r", exc)
        return JSONResponse(status_code=500, content={"detail": exc.detail})
