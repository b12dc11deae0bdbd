from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    CHAT_API_BASE_URL: str = "http://localhost:8080"
    CHAT_WS_URL: str = "ws://localhost:8080/ws/chat"
    CHAT_TRANSPORT: Literal["websocket", "redis"] = "websocket"

    REDIS_URL: str = "redis://localhost:6379/0"

    CHAT_CONNECT_TIMEOUT: float = 10.0
    CHAT_REQUEST_TIMEOUT: float = 10.0

    CHAT_USER_CHANNEL: str = "/user/{user_id}/queue/messages"
    CHAT_CONVERSATION_TOPIC: str = "/topic/conversation/{conversation_id}"
    CHAT_MARK_READ_DESTINATION: str = "/app/chat.markAsRead"

    CHAT_ADMIN_USER_ID: int = 1

    JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS512"

    CORS_ORIGINS: list[str] = ["*"]

    WS_HEARTBEAT_SECONDS: int = 30

    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    def user_channel(self, user_id: int) -> str:
        return self.CHAT_USER_CHANNEL.format(user_id=user_id)

    def conversation_topic(self, conversation_id: str) -> str:
        return self.CHAT_CONVERSATION_TOPIC.format(conversation_id=conversation_id)

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
