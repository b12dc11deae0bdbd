"""WebSocket frame envelopes exchanged with the messaging server."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class WsClientFrame(BaseModel):
    """Client → Server."""

    type: str  # subscribe | unsubscribe | publish | ping
    channel: str | None = None
    data: dict[str, Any] = {}


class WsServerFrame(BaseModel):
    """Server → Client."""

    type: str  # message | error | pong
    channel: str | None = None
    data: dict[str, Any] = {}
