from __future__ import annotations

from typing import Any, Protocol


class LiveConnection(Protocol):
    """A live client connection that server events can be pushed to."""

    @property
    def handle_id(self) -> str: ...

    async def emit(self, event: str, data: Any = None) -> None: ...

    async def close(self, code: int = 1000, reason: str = "") -> None: ...


class ConnectionLookup(Protocol):
    """The part of the connection registry the delivery path needs."""

    def lookup(self, user_id: str) -> LiveConnection | None: ...

    def remove(self, handle: LiveConnection) -> bool: ...
