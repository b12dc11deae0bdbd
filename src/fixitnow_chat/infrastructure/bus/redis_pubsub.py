"""Transport over Redis Pub/Sub, for deployments that fan chat events out through Redis."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator

import redis.asyncio as aioredis

from fixitnow_chat.application.exceptions import ChatConnectionError
from fixitnow_chat.infrastructure.bus.serializer import decode_frame, encode_frame

logger = logging.getLogger(__name__)

POLL_TIMEOUT_SECONDS = 1.0


class RedisPubSubTransport:
    """Implements application.ports.transport.Transport.

    Channels map one-to-one onto Redis channels. Published client frames
    are wrapped in the ``{"event", "data"}`` envelope with the destination
    as the event type.
    """

    def __init__(self, redis_url: str) -> None:
        self._redis_url = redis_url
        self._redis: aioredis.Redis | None = None
        self._pubsub: aioredis.client.PubSub | None = None

    def set_token(self, token: str | None) -> None:
        # Redis channels are not authenticated per user.
        pass

    async def open(self) -> None:
        self._redis = aioredis.from_url(self._redis_url, decode_responses=True)
        await self._redis.ping()
        self._pubsub = self._redis.pubsub()
        logger.debug("Redis transport connected to %s", self._redis_url)

    async def close(self) -> None:
        pubsub, self._pubsub = self._pubsub, None
        redis, self._redis = self._redis, None
        if pubsub is not None:
            await pubsub.aclose()
        if redis is not None:
            await redis.aclose()

    async def subscribe(self, channel: str) -> None:
        await self._require_pubsub().subscribe(channel)

    async def unsubscribe(self, channel: str) -> None:
        await self._require_pubsub().unsubscribe(channel)

    async def publish(self, destination: str, payload: dict[str, Any]) -> None:
        if self._redis is None:
            raise ChatConnectionError("Redis transport is not open")
        await self._redis.publish(destination, encode_frame(destination, payload))

    async def frames(self) -> AsyncIterator[tuple[str, dict[str, Any]]]:
        pubsub = self._require_pubsub()
        while self._pubsub is pubsub:
            if not pubsub.subscribed:
                await asyncio.sleep(POLL_TIMEOUT_SECONDS)
                continue
            message = await pubsub.get_message(
                ignore_subscribe_messages=True,
                timeout=POLL_TIMEOUT_SECONDS,
            )
            if message is None or message["type"] != "message":
                continue
            try:
                _, data = decode_frame(message["data"])
            except ValueError:
                logger.warning("Dropping malformed event on %s", message["channel"])
                continue
            yield message["channel"], data

    def _require_pubsub(self) -> aioredis.client.PubSub:
        if self._pubsub is None:
            raise ChatConnectionError("Redis transport is not open")
        return self._pubsub
