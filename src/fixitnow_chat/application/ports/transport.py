from __future__ import annotations

from typing import Any, AsyncIterator, Protocol


class Transport(Protocol):
    """Byte-level link to the messaging server driven by the ConnectionManager."""

    async def open(self) -> None: ...

    def set_token(self, token: str | None) -> None:
        """Credentials for the next ``open``; an open link keeps its own."""
        ...

    async def close(self) -> None:
        """Release the link. Must be safe to call when not open."""
        ...

    async def subscribe(self, channel: str) -> None: ...

    async def unsubscribe(self, channel: str) -> None: ...

    async def publish(self, destination: str, payload: dict[str, Any]) -> None: ...

    def frames(self) -> AsyncIterator[tuple[str, dict[str, Any]]]:
        """Yield (channel, payload) pairs in delivery order until the link closes."""
        ...
