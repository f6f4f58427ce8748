from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PayloadError

from message_relay.api.deps import (
    DeliveryRouterDep,
    RegistryDep,
    UoWFactoryDep,
    VerifierDep,
)
from message_relay.application.dto.message import SendMessageDTO
from message_relay.application.dto.principal import Principal
from message_relay.application.exceptions import AuthError, StorageError, ValidationError
from message_relay.application.ports.auth import TokenVerifier
from message_relay.application.ports.connections import LiveConnection
from message_relay.application.uow import UnitOfWorkFactory
from message_relay.config import settings
from message_relay.domain.value_objects.enums import AckStatus, LiveEvent
from message_relay.infrastructure.ws.connection import WebSocketConnection
from message_relay.infrastructure.ws.protocol import (
    CounterpartPayload,
    PrivateMessagePayload,
    WsInbound,
)
from message_relay.infrastructure.ws.registry import ConnectionRegistry
from message_relay.services import read_state_service
from message_relay.services.delivery_router import DeliveryRouter

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])

WS_AUTH_FAILED = 4001
WS_REPLACED = 4002


async def _authenticate(verifier: TokenVerifier, token: str) -> Principal | None:
    try:
        return await verifier.verify(token)
    except AuthError as exc:
        logger.debug("WS auth failed: %s", exc.detail)
        return None


def _parse(raw: str) -> WsInbound | None:
    try:
        return WsInbound.model_validate_json(raw)
    except PayloadError:
        return None


def _join_token(data: object) -> str:
    if isinstance(data, str):
        return data
    if isinstance(data, dict) and isinstance(data.get("token"), str):
        return data["token"]
    return ""


async def _await_join(conn: WebSocketConnection, verifier: TokenVerifier) -> Principal | None:
    """Wait for a ``join`` frame within the grace period and verify its token."""
    try:
        async with asyncio.timeout(settings.WS_JOIN_TIMEOUT_SECONDS):
            while True:
                msg = _parse(await conn.websocket.receive_text())
                if msg is None:
                    return None
                if msg.type == LiveEvent.PING:
                    await conn.emit(LiveEvent.PONG, {}, ref=msg.ref)
                    continue
                if msg.type != LiveEvent.JOIN:
                    logger.debug("WS %s sent %r before joining", conn.handle_id, msg.type)
                    return None
                return await _authenticate(verifier, _join_token(msg.data))
    except TimeoutError:
        logger.info("WS %s did not join within %.1fs", conn.handle_id, settings.WS_JOIN_TIMEOUT_SECONDS)
        return None


@router.websocket("/ws/chat")
async def ws_chat(
    websocket: WebSocket,
    registry: RegistryDep,
    delivery: DeliveryRouterDep,
    verifier: VerifierDep,
    uow_factory: UoWFactoryDep,
    token: str | None = Query(None),
) -> None:
    conn = WebSocketConnection(websocket)

    if token is not None:
        principal = await _authenticate(verifier, token)
        if principal is None:
            await websocket.close(code=WS_AUTH_FAILED, reason="Authentication failed")
            return
        await websocket.accept()
    else:
        await websocket.accept()
        try:
            principal = await _await_join(conn, verifier)
        except WebSocketDisconnect:
            return
        if principal is None:
            await conn.close(code=WS_AUTH_FAILED, reason="Authentication failed")
            return

    replaced = registry.register(principal.user_id, conn)
    if replaced is not None and settings.WS_CLOSE_REPLACED_CONNECTIONS:
        await _close_quietly(replaced, WS_REPLACED, "Replaced by a newer connection")
    await registry.broadcast(LiveEvent.UPDATE_USERS, registry.online_users())

    heartbeat_task = asyncio.create_task(
        _heartbeat(conn), name=f"ws-heartbeat-{conn.handle_id}",
    )
    try:
        await _read_loop(conn, principal, registry, delivery, uow_factory)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS error for %s", principal.user_id)
    finally:
        heartbeat_task.cancel()
        if registry.remove(conn):
            logger.info("%s has left the chat", principal.user_id)
            await registry.broadcast(LiveEvent.UPDATE_USERS, registry.online_users())


async def _close_quietly(conn: LiveConnection, code: int, reason: str) -> None:
    try:
        await conn.close(code=code, reason=reason)
    except Exception:  # noqa: BLE001
        logger.debug("Closing replaced connection %s failed", conn.handle_id, exc_info=True)


async def _heartbeat(conn: WebSocketConnection) -> None:
    interval = settings.WS_HEARTBEAT_SECONDS
    try:
        while True:
            await asyncio.sleep(interval)
            await conn.emit(LiveEvent.PONG, {})
    except asyncio.CancelledError:
        pass
    except Exception:  # noqa: BLE001
        logger.debug("Heartbeat stopped for %s", conn.handle_id, exc_info=True)


async def _read_loop(
    conn: WebSocketConnection,
    principal: Principal,
    registry: ConnectionRegistry,
    delivery: DeliveryRouter,
    uow_factory: UnitOfWorkFactory,
) -> None:
    while True:
        raw = await conn.websocket.receive_text()
        msg = _parse(raw)
        if msg is None:
            await conn.emit(LiveEvent.ERROR, {"code": "invalid_payload"})
            continue

        if msg.type == LiveEvent.PING:
            await conn.emit(LiveEvent.PONG, {}, ref=msg.ref)

        elif msg.type == LiveEvent.PRIVATE_MESSAGE:
            await _handle_send(conn, principal, msg, delivery, uow_factory)

        elif msg.type == LiveEvent.READ_MESSAGE:
            await _handle_mark_read(conn, principal, msg, uow_factory)

        elif msg.type == LiveEvent.GET_UNREAD_COUNT:
            await _handle_unread_count(conn, principal, msg, uow_factory)

        elif msg.type == LiveEvent.JOIN:
            # Identity is fixed for the life of the connection.
            await conn.emit(LiveEvent.ERROR, {"code": "already_joined"}, ref=msg.ref)

        else:
            await conn.emit(
                LiveEvent.ERROR, {"code": "unknown_type", "type": msg.type}, ref=msg.ref,
            )


async def _ack_error(conn: WebSocketConnection, ref: str | None, code: str, message: str) -> None:
    await conn.emit(
        LiveEvent.ACK,
        {"status": AckStatus.ERROR, "code": code, "message": message},
        ref=ref,
    )


async def _handle_send(
    conn: WebSocketConnection,
    principal: Principal,
    msg: WsInbound,
    delivery: DeliveryRouter,
    uow_factory: UnitOfWorkFactory,
) -> None:
    try:
        payload = PrivateMessagePayload.model_validate(msg.data)
    except PayloadError:
        await _ack_error(conn, msg.ref, "invalid_data", "Invalid data.")
        return

    dto = SendMessageDTO(to_user_id=payload.toUsername, body=payload.message)
    try:
        async with uow_factory() as uow:
            receipt = await delivery.send(principal, dto, conn, uow)
    except ValidationError as exc:
        await _ack_error(conn, msg.ref, "invalid_data", exc.detail)
        return
    except StorageError as exc:
        logger.warning("Send from %s to %s not persisted: %s", principal.user_id, dto.to_user_id, exc.detail)
        await _ack_error(conn, msg.ref, "storage_error", "Message was not delivered")
        return

    await conn.emit(
        LiveEvent.ACK,
        {
            "status": AckStatus.OK,
            "delivery": receipt.status,
            "id": str(receipt.message.id),
        },
        ref=msg.ref,
    )


async def _handle_mark_read(
    conn: WebSocketConnection,
    principal: Principal,
    msg: WsInbound,
    uow_factory: UnitOfWorkFactory,
) -> None:
    try:
        payload = CounterpartPayload.model_validate(msg.data)
    except PayloadError:
        await conn.emit(LiveEvent.ERROR, {"code": "invalid_data"}, ref=msg.ref)
        return

    try:
        async with uow_factory() as uow:
            modified = await read_state_service.mark_conversation_read(
                principal, payload.toUsername, uow,
            )
    except StorageError as exc:
        logger.warning("mark_read %s <- %s failed: %s", principal.user_id, payload.toUsername, exc.detail)
        await conn.emit(LiveEvent.ERROR, {"code": "storage_error"}, ref=msg.ref)
        return

    if msg.ref is not None:
        await conn.emit(
            LiveEvent.ACK,
            {"status": AckStatus.OK, "modifiedCount": modified},
            ref=msg.ref,
        )


async def _handle_unread_count(
    conn: WebSocketConnection,
    principal: Principal,
    msg: WsInbound,
    uow_factory: UnitOfWorkFactory,
) -> None:
    try:
        payload = CounterpartPayload.model_validate(msg.data)
    except PayloadError:
        await conn.emit(LiveEvent.ERROR, {"code": "invalid_data"}, ref=msg.ref)
        return

    try:
        async with uow_factory() as uow:
            count = await read_state_service.unread_from(principal, payload.toUsername, uow)
    except StorageError as exc:
        logger.warning("unread count for %s failed: %s", principal.user_id, exc.detail)
        await conn.emit(LiveEvent.ERROR, {"code": "storage_error"}, ref=msg.ref)
        return

    await conn.emit(
        LiveEvent.UNREAD_COUNT_RESPONSE,
        {"toUsername": payload.toUsername, "unreadCount": count},
        ref=msg.ref,
    )
