"""Client-side connection manager: one live link to the messaging server."""
from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Any, Callable, Coroutine

from fixitnow_chat.application.exceptions import ChatConnectionError
from fixitnow_chat.application.ports.transport import Transport
from fixitnow_chat.domain.value_objects.enums import ConnectionState

logger = logging.getLogger(__name__)

FrameHandler = Callable[[dict[str, Any]], Coroutine[Any, Any, None]]
OnOpenCallback = Callable[[], Coroutine[Any, Any, None]]
OnErrorCallback = Callable[[Exception], Coroutine[Any, Any, None]]


class Subscription:
    """Handle returned by ``ConnectionManager.subscribe``."""

    def __init__(self, manager: ConnectionManager, channel: str) -> None:
        self._manager = manager
        self.channel = channel
        self.active = True

    async def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        await self._manager._remove(self)

    def __repr__(self) -> str:
        return f"Subscription(channel={self.channel!r}, active={self.active})"


class ConnectionManager:
    """Owns the transport, its lifecycle and the channel handler registry.

    State machine: DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED.
    There is no automatic reconnect; callers re-invoke ``connect``.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        connect_timeout: float = 10.0,
        mark_read_destination: str = "/app/chat.markAsRead",
    ) -> None:
        self._transport = transport
        self._connect_timeout = connect_timeout
        self._mark_read_destination = mark_read_destination
        self._state = ConnectionState.DISCONNECTED
        self._handlers: dict[str, dict[Subscription, FrameHandler]] = {}
        self._reader: asyncio.Task[None] | None = None
        self._on_error: OnErrorCallback | None = None
        # Bumped on every teardown so an in-flight connect can detect it lost a race.
        self._epoch = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def channels(self) -> list[str]:
        return list(self._handlers)

    async def connect(
        self,
        on_open: OnOpenCallback | None = None,
        on_error: OnErrorCallback | None = None,
    ) -> bool:
        """Open the link. No-op when already connecting or connected.

        Failures are logged and reported to ``on_error``; they never raise.
        Returns True if this call established the connection.
        """
        if self._state is not ConnectionState.DISCONNECTED:
            logger.debug("connect() ignored in state %s", self._state)
            return False

        self._state = ConnectionState.CONNECTING
        epoch = self._epoch
        try:
            await asyncio.wait_for(self._transport.open(), timeout=self._connect_timeout)
        except Exception as exc:
            if epoch == self._epoch:
                self._state = ConnectionState.DISCONNECTED
            await self._close_transport()
            error = _as_connection_error(exc)
            logger.warning("Chat connection failed: %s", error.detail)
            if on_error is not None:
                await on_error(error)
            return False

        if epoch != self._epoch:
            logger.debug("Connection opened after disconnect; closing it")
            await self._close_transport()
            return False

        self._state = ConnectionState.CONNECTED
        self._on_error = on_error
        for channel in list(self._handlers):
            await self._transport_subscribe(channel)
        if epoch != self._epoch:
            return False
        self._reader = asyncio.create_task(self._read_loop(), name="chat-connection-reader")
        logger.info("Chat connection established")

        if on_open is not None:
            await on_open()
        return True

    async def disconnect(self) -> None:
        """Tear down the link and every subscription. Safe when not connected."""
        was_active = self._state is not ConnectionState.DISCONNECTED
        self._teardown()
        reader, self._reader = self._reader, None
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            with suppress(asyncio.CancelledError):
                await reader
        await self._close_transport()
        if was_active:
            logger.info("Chat connection closed")

    def set_token(self, token: str | None) -> None:
        """Use ``token`` from the next ``connect`` on."""
        self._transport.set_token(token)

    async def subscribe(self, channel: str, handler: FrameHandler) -> Subscription:
        """Register ``handler`` for frames on ``channel``.

        When not connected the registration is kept and sent to the
        transport once the connection opens.
        """
        subscription = Subscription(self, channel)
        handlers = self._handlers.setdefault(channel, {})
        first = not handlers
        handlers[subscription] = handler
        if first and self.is_connected:
            await self._transport_subscribe(channel)
        logger.debug("Subscribed to %s", channel)
        return subscription

    async def publish(self, destination: str, payload: dict[str, Any]) -> bool:
        if not self.is_connected:
            logger.debug("Not connected; dropping publish to %s", destination)
            return False
        try:
            await self._transport.publish(destination, payload)
        except Exception as exc:
            logger.warning("Publish to %s failed: %s", destination, exc)
            return False
        return True

    async def mark_as_read(self, conversation_id: str, user_id: int) -> bool:
        return await self.publish(
            self._mark_read_destination,
            {"conversationId": conversation_id, "userId": user_id},
        )

    # -- internals -------------------------------------------------------

    async def _remove(self, subscription: Subscription) -> None:
        handlers = self._handlers.get(subscription.channel)
        if not handlers or subscription not in handlers:
            return
        del handlers[subscription]
        if handlers:
            return
        del self._handlers[subscription.channel]
        if self.is_connected:
            try:
                await self._transport.unsubscribe(subscription.channel)
            except Exception as exc:
                logger.warning("Unsubscribe from %s failed: %s", subscription.channel, exc)
        logger.debug("Unsubscribed from %s", subscription.channel)

    async def _transport_subscribe(self, channel: str) -> None:
        try:
            await self._transport.subscribe(channel)
        except Exception as exc:
            logger.warning("Subscribe to %s failed: %s", channel, exc)

    async def _read_loop(self) -> None:
        error: ChatConnectionError
        try:
            async for channel, payload in self._transport.frames():
                await self._dispatch(channel, payload)
            error = ChatConnectionError("Connection closed by server")
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error = _as_connection_error(exc)

        if self._state is ConnectionState.DISCONNECTED:
            return
        logger.warning("Chat connection lost: %s", error.detail)
        on_error = self._on_error
        self._reader = None
        self._teardown()
        await self._close_transport()
        if on_error is not None:
            await on_error(error)

    async def _dispatch(self, channel: str, payload: dict[str, Any]) -> None:
        handlers = self._handlers.get(channel)
        if not handlers:
            logger.debug("No handler for frame on %s", channel)
            return
        for handler in list(handlers.values()):
            try:
                await handler(payload)
            except Exception:
                logger.exception("Error handling frame on %s", channel)

    def _teardown(self) -> None:
        self._epoch += 1
        self._state = ConnectionState.DISCONNECTED
        self._on_error = None
        for handlers in self._handlers.values():
            for subscription in handlers:
                subscription.active = False
        self._handlers.clear()

    async def _close_transport(self) -> None:
        try:
            await self._transport.close()
        except Exception as exc:
            logger.debug("Transport close failed: %s", exc)


def _as_connection_error(exc: Exception) -> ChatConnectionError:
    if isinstance(exc, ChatConnectionError):
        return exc
    if isinstance(exc, asyncio.TimeoutError):
        return ChatConnectionError("Timed out connecting to messaging server")
    return ChatConnectionError(str(exc) or type(exc).__name__)
