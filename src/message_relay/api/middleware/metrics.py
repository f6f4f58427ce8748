"""Request timing middleware."""
from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and latency of each REST call.

    Requests slower than ``slow_ms`` are logged at warning level. WebSocket
    traffic does not pass through here.
    """

    def __init__(self, app: ASGIApp, slow_ms: float = 500.0) -> None:
        super().__init__(app)
        self._slow_ms = slow_ms

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        level = logging.WARNING if elapsed_ms >= self._slow_ms else logging.INFO
        logger.log(
            level,
            "%s %s %s %.1fms",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
        response.headers["Server-Timing"] = f"app;dur={elapsed_ms:.1f}"
        return response
