"""WebSocket message envelope models."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, field_validator


class WsInbound(BaseModel):
    """Client → Server."""

    type: str  # join | private message | read message | get unread count | ping
    data: Any = None
    ref: str | None = None  # echoed back on the matching ack


class WsOutbound(BaseModel):
    """Server → Client."""

    type: str  # chat message | ack | unread count response | update users | error | pong
    data: Any = None
    ref: str | None = None


class PrivateMessagePayload(BaseModel):
    toUsername: str
    message: str

    @field_validator("toUsername")
    @classmethod
    def _strip_recipient(cls, value: str) -> str:
        return value.strip()


class CounterpartPayload(BaseModel):
    """Payload of ``read message`` and ``get unread count``."""

    toUsername: str

    @field_validator("toUsername")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("toUsername must not be empty")
        return value
