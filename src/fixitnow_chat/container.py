"""Composition root: builds the per-user object graph from settings."""
from __future__ import annotations

from fixitnow_chat.application.ports.auth import TokenVerifier
from fixitnow_chat.application.ports.transport import Transport
from fixitnow_chat.config import Settings, settings
from fixitnow_chat.infrastructure.auth.hmac_verifier import HmacVerifier
from fixitnow_chat.infrastructure.bus.redis_pubsub import RedisPubSubTransport
from fixitnow_chat.infrastructure.http.api_client import HttpChatApi
from fixitnow_chat.infrastructure.ws.manager import ConnectionManager
from fixitnow_chat.infrastructure.ws.websocket_transport import WebSocketTransport
from fixitnow_chat.services.chat_service import ChatService


def build_transport(token: str, cfg: Settings = settings) -> Transport:
    if cfg.CHAT_TRANSPORT == "redis":
        return RedisPubSubTransport(cfg.REDIS_URL)
    return WebSocketTransport(cfg.CHAT_WS_URL, token)


def build_chat_service(token: str, cfg: Settings = settings) -> ChatService:
    connection = ConnectionManager(
        build_transport(token, cfg),
        connect_timeout=cfg.CHAT_CONNECT_TIMEOUT,
        mark_read_destination=cfg.CHAT_MARK_READ_DESTINATION,
    )
    api = HttpChatApi(cfg.CHAT_API_BASE_URL, token, timeout=cfg.CHAT_REQUEST_TIMEOUT)
    return ChatService(
        connection=connection,
        api=api,
        user_channel=cfg.user_channel,
        conversation_topic=cfg.conversation_topic,
        admin_user_id=cfg.CHAT_ADMIN_USER_ID,
    )


def build_verifier(cfg: Settings = settings) -> TokenVerifier:
    return HmacVerifier(cfg.JWT_SECRET, cfg.JWT_ALGORITHM)
