"""FastAPI dependency injection helpers."""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Annotated, AsyncIterator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.requests import HTTPConnection

from message_relay.application.dto.principal import Principal
from message_relay.application.exceptions import AuthError
from message_relay.application.ports.auth import TokenVerifier
from message_relay.application.uow import UnitOfWork, UnitOfWorkFactory
from message_relay.config import settings
from message_relay.infrastructure.auth.hs256_verifier import HS256Verifier
from message_relay.infrastructure.auth.jwks_verifier import JWKSVerifier
from message_relay.infrastructure.db.session import AsyncSessionLocal
from message_relay.infrastructure.db.uow import SqlAlchemyUoW
from message_relay.infrastructure.ws.registry import ConnectionRegistry
from message_relay.services.delivery_router import DeliveryRouter

_bearer_scheme = HTTPBearer(auto_error=False)


@asynccontextmanager
async def open_uow() -> AsyncIterator[SqlAlchemyUoW]:
    """Unit of work on a fresh session; rolled back if the block raises."""
    async with AsyncSessionLocal() as session:
        async with SqlAlchemyUoW(session) as uow:
            yield uow


async def get_uow() -> AsyncIterator[UnitOfWork]:
    async with open_uow() as uow:
        yield uow


UoWDep = Annotated[UnitOfWork, Depends(get_uow)]


def get_uow_factory() -> UnitOfWorkFactory:
    """Live-channel handlers open one unit of work per inbound frame."""
    return open_uow


UoWFactoryDep = Annotated[UnitOfWorkFactory, Depends(get_uow_factory)]


def _get_verifier() -> TokenVerifier:
    if settings.JWT_VERIFY_MODE == "jwks":
        assert settings.JWKS_URL, "JWKS_URL must be set when JWT_VERIFY_MODE=jwks"
        return JWKSVerifier(
            settings.JWKS_URL,
            user_claim=settings.JWT_USER_CLAIM,
            require_exp=settings.JWT_REQUIRE_EXP,
        )
    return HS256Verifier(
        settings.JWT_SECRET,
        settings.JWT_ALGORITHM,
        user_claim=settings.JWT_USER_CLAIM,
        require_exp=settings.JWT_REQUIRE_EXP,
    )


_verifier: TokenVerifier | None = None


def get_verifier() -> TokenVerifier:
    global _verifier  # noqa: PLW0603
    if _verifier is None:
        _verifier = _get_verifier()
    return _verifier


VerifierDep = Annotated[TokenVerifier, Depends(get_verifier)]


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
    verifier: VerifierDep,
) -> Principal:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access denied, no token provided",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return await verifier.verify(credentials.credentials)
    except AuthError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.detail or "Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


def get_registry(conn: HTTPConnection) -> ConnectionRegistry:
    return conn.app.state.registry


RegistryDep = Annotated[ConnectionRegistry, Depends(get_registry)]


def get_delivery_router(conn: HTTPConnection) -> DeliveryRouter:
    return conn.app.state.delivery_router


DeliveryRouterDep = Annotated[DeliveryRouter, Depends(get_delivery_router)]
