from __future__ import annotations

from typing import Protocol

from message_relay.application.dto.principal import Principal


class TokenVerifier(Protocol):
    async def verify(self, token: str) -> Principal:
        """Return the caller's principal or raise ``AuthError``."""
        ...
