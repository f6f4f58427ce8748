from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from message_relay.api.middleware.correlation_id import CorrelationIdMiddleware
from message_relay.api.middleware.metrics import RequestTimingMiddleware
from message_relay.api.v1.routers import health, messages, ws
from message_relay.application.dto.message import DeliveryPolicy
from message_relay.application.exceptions import (
    AuthError,
    ForbiddenError,
    StorageError,
    ValidationError,
)
from message_relay.config import settings
from message_relay.infrastructure.db.session import engine
from message_relay.infrastructure.ws.registry import ConnectionRegistry
from message_relay.services.delivery_router import DeliveryRouter

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    logger.info("Message relay started")

    yield

    registry: ConnectionRegistry = app.state.registry
    for handle in registry.handles():
        try:
            await handle.close(code=1001, reason="Server shutting down")
        except Exception:  # noqa: BLE001
            logger.debug("Closing %s on shutdown failed", handle.handle_id, exc_info=True)
    await engine.dispose()
    logger.info("Database engine disposed")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Freelance Message Relay",
        version="0.1.0",
        lifespan=lifespan,
    )

    registry = ConnectionRegistry()
    app.state.registry = registry
    app.state.delivery_router = DeliveryRouter(
        registry,
        DeliveryPolicy(
            max_body_length=settings.MESSAGE_MAX_LENGTH,
            allow_self_messages=settings.ALLOW_SELF_MESSAGES,
        ),
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestTimingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(messages.router)
    app.include_router(ws.router)

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AuthError)
    async def _unauthorized(_req: Request, exc: AuthError) -> JSONResponse:
        return JSONResponse(status_code=401, content={"detail": exc.detail})

    @app.exception_handler(ForbiddenError)
    async def _forbidden(_req: Request, exc: ForbiddenError) -> JSONResponse:
        return JSONResponse(status_code=403, content={"detail": exc.detail})

    @app.exception_handler(ValidationError)
    async def _validation(_req: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": exc.detail})

    @app.exception_handler(StorageError)
    async def _storage(req: Request, exc: StorageError) -> JSONResponse:
        logger.warning("Storage failure on %s: %s", req.url.path, exc.detail)
        return JSONResponse(status_code=503, content={"detail": "Message store unavailable"})
