from __future__ import annotations

import uuid
from typing import Any

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from message_relay.infrastructure.ws.protocol import WsOutbound


class WebSocketConnection:
    """Connection handle wrapping a Starlette WebSocket."""

    def __init__(self, websocket: WebSocket) -> None:
        self._ws = websocket
        self._handle_id = uuid.uuid4().hex

    @property
    def handle_id(self) -> str:
        return self._handle_id

    @property
    def websocket(self) -> WebSocket:
        return self._ws

    async def emit(self, event: str, data: Any = None, *, ref: str | None = None) -> None:
        payload = WsOutbound(type=str(event), data=data, ref=ref)
        await self._ws.send_text(payload.model_dump_json())

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self._ws.application_state == WebSocketState.DISCONNECTED:
            return
        await self._ws.close(code=code, reason=reason)

    def __repr__(self) -> str:
        return f"WebSocketConnection({self._handle_id})"
