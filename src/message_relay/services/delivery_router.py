"""Store-first routing of private messages to live connections."""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from message_relay.application.dto.message import (
    DeliveryPolicy,
    SendMessageDTO,
    SendReceipt,
    message_to_payload,
)
from message_relay.application.dto.principal import Principal
from message_relay.application.exceptions import ValidationError
from message_relay.application.ports.clock import Clock, SystemClock
from message_relay.application.ports.connections import ConnectionLookup, LiveConnection
from message_relay.application.uow import UnitOfWork
from message_relay.domain.entities.message import Message
from message_relay.domain.value_objects.enums import DeliveryStatus, LiveEvent

logger = logging.getLogger(__name__)


class _PairLocks:
    """One asyncio.Lock per unordered user pair, dropped when nobody holds it."""

    def __init__(self) -> None:
        self._locks: dict[frozenset[str], asyncio.Lock] = {}
        self._waiters: dict[frozenset[str], int] = {}

    @asynccontextmanager
    async def hold(self, user_a: str, user_b: str) -> AsyncIterator[None]:
        key = frozenset((user_a, user_b))
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if not self._waiters[key]:
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class DeliveryRouter:
    """Validates, persists and fans out private messages.

    A send goes Received -> Persisted -> delivered to both ends or to the
    sender only. Nothing is pushed to any connection unless the message was
    committed first; a push that fails afterwards never undoes the write.
    """

    def __init__(
        self,
        registry: ConnectionLookup,
        policy: DeliveryPolicy | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._registry = registry
        self._policy = policy or DeliveryPolicy()
        self._clock = clock or SystemClock()
        self._pair_locks = _PairLocks()

    def validate(self, sender: Principal, dto: SendMessageDTO) -> None:
        if not dto.to_user_id:
            raise ValidationError("Recipient is required")
        id_limit = self._policy.max_user_id_length
        if len(dto.to_user_id) > id_limit or len(sender.user_id) > id_limit:
            raise ValidationError(f"User ids are limited to {id_limit} characters")
        if not dto.body or not dto.body.strip():
            raise ValidationError("Message body is required")
        if len(dto.body) > self._policy.max_body_length:
            raise ValidationError(
                f"Message body exceeds {self._policy.max_body_length} characters"
            )
        # PostgreSQL text columns cannot hold NUL.
        if "\x00" in dto.body or "\x00" in dto.to_user_id:
            raise ValidationError("Message contains a NUL character")
        if dto.to_user_id == sender.user_id and not self._policy.allow_self_messages:
            raise ValidationError("Cannot send a message to yourself")

    async def send(
        self,
        sender: Principal,
        dto: SendMessageDTO,
        origin: LiveConnection | None,
        uow: UnitOfWork,
    ) -> SendReceipt:
        """Persist ``dto`` as a message from ``sender`` and push it out.

        ``origin`` is the connection the send arrived on; it receives the
        authoritative echo. Raises ``ValidationError`` before touching the
        store and ``StorageError`` if the write or commit fails.
        """
        self.validate(sender, dto)

        async with self._pair_locks.hold(sender.user_id, dto.to_user_id):
            message = Message(
                id=uuid.uuid4(),
                sender=sender.user_id,
                recipient=dto.to_user_id,
                body=dto.body,
                is_read=False,
                created_at=self._clock.now(),
            )
            stored = await uow.messages_w.append(message)
            await uow.commit()
            logger.info("Message %s persisted: %s -> %s", stored.id, stored.sender, stored.recipient)

            status = await self._fan_out(stored, origin)

        return SendReceipt(message=stored, status=status)

    async def _fan_out(self, message: Message, origin: LiveConnection | None) -> DeliveryStatus:
        payload = message_to_payload(message)
        recipient = self._registry.lookup(message.recipient)

        delivered = False
        if recipient is not None and recipient is not origin:
            delivered = await self._push(recipient, payload)
        elif recipient is not None:
            # Self-message on the sending connection: the echo below covers it.
            delivered = True

        if origin is not None:
            await self._push(origin, payload)

        if delivered:
            logger.debug("Message %s delivered to %s", message.id, message.recipient)
            return DeliveryStatus.DELIVERED
        logger.debug("Recipient %s offline; message %s stored", message.recipient, message.id)
        return DeliveryStatus.STORED

    async def _push(self, handle: LiveConnection, payload: dict) -> bool:
        try:
            await handle.emit(LiveEvent.CHAT_MESSAGE, payload)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Push of message %s to %s failed (%s); pruning handle",
                payload["id"], handle.handle_id, exc,
            )
            self._registry.remove(handle)
            return False
        return True
