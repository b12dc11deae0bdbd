"""Transport over a plain WebSocket using the JSON frame envelope."""
from __future__ import annotations

import logging
from typing import Any, AsyncIterator
from urllib.parse import urlencode

import pydantic
from websockets.asyncio.client import ClientConnection, connect

from fixitnow_chat.application.exceptions import ChatConnectionError
from fixitnow_chat.infrastructure.ws.protocol import WsClientFrame, WsServerFrame

logger = logging.getLogger(__name__)


class WebSocketTransport:
    """Implements application.ports.transport.Transport."""

    def __init__(self, url: str, token: str | None = None) -> None:
        self._url = url
        self._token = token
        self._ws: ClientConnection | None = None

    @property
    def endpoint(self) -> str:
        if not self._token:
            return self._url
        sep = "&" if "?" in self._url else "?"
        return f"{self._url}{sep}{urlencode({'token': self._token})}"

    def set_token(self, token: str | None) -> None:
        self._token = token

    async def open(self) -> None:
        self._ws = await connect(self.endpoint, open_timeout=None)

    async def close(self) -> None:
        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close()

    async def subscribe(self, channel: str) -> None:
        await self._send(WsClientFrame(type="subscribe", channel=channel))

    async def unsubscribe(self, channel: str) -> None:
        await self._send(WsClientFrame(type="unsubscribe", channel=channel))

    async def publish(self, destination: str, payload: dict[str, Any]) -> None:
        await self._send(WsClientFrame(type="publish", channel=destination, data=payload))

    async def frames(self) -> AsyncIterator[tuple[str, dict[str, Any]]]:
        ws = self._require_open()
        async for raw in ws:
            try:
                frame = WsServerFrame.model_validate_json(raw)
            except pydantic.ValidationError:
                logger.warning("Dropping malformed frame from messaging server")
                continue

            if frame.type == "message" and frame.channel:
                yield frame.channel, frame.data
            elif frame.type == "error":
                logger.warning("Messaging server error: %s", frame.data)

    async def _send(self, frame: WsClientFrame) -> None:
        await self._require_open().send(frame.model_dump_json())

    def _require_open(self) -> ClientConnection:
        if self._ws is None:
            raise ChatConnectionError("WebSocket transport is not open")
        return self._ws
