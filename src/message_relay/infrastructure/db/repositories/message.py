from __future__ import annotations

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from message_relay.domain.entities.message import Message
from message_relay.infrastructure.db.errors import storage_errors
from message_relay.infrastructure.db.mappers import message as mapper
from message_relay.infrastructure.db.models.message import MessageModel

_TIMELINE = (MessageModel.created_at.asc(), MessageModel.id.asc())


class MessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_between(self, user_a: str, user_b: str) -> list[Message]:
        stmt = (
            select(MessageModel)
            .where(
                or_(
                    and_(MessageModel.sender == user_a, MessageModel.recipient == user_b),
                    and_(MessageModel.sender == user_b, MessageModel.recipient == user_a),
                )
            )
            .order_by(*_TIMELINE)
        )
        with storage_errors("find_between"):
            result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def find_for_participant(self, user_id: str) -> list[Message]:
        stmt = (
            select(MessageModel)
            .where(or_(MessageModel.sender == user_id, MessageModel.recipient == user_id))
            .order_by(*_TIMELINE)
        )
        with storage_errors("find_for_participant"):
            result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def count_unread(self, user_id: str, *, sender: str | None = None) -> int:
        stmt = select(func.count()).select_from(MessageModel).where(
            MessageModel.recipient == user_id,
            MessageModel.is_read.is_(False),
        )
        if sender is not None:
            stmt = stmt.where(MessageModel.sender == sender)
        with storage_errors("count_unread"):
            result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def count_unread_by_sender(self, user_id: str) -> dict[str, int]:
        stmt = (
            select(MessageModel.sender, func.count())
            .where(
                MessageModel.recipient == user_id,
                MessageModel.is_read.is_(False),
            )
            .group_by(MessageModel.sender)
        )
        with storage_errors("count_unread_by_sender"):
            result = await self._session.execute(stmt)
        return {sender: int(count) for sender, count in result.all()}


class MessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(self, message: Message) -> Message:
        model = mapper.entity_to_model(message)
        stmt = (
            pg_insert(MessageModel)
            .values(
                id=model.id,
                sender=model.sender,
                recipient=model.recipient,
                body=model.body,
                is_read=model.is_read,
                created_at=model.created_at,
            )
            .returning(MessageModel)
        )
        with storage_errors("append"):
            result = await self._session.execute(stmt)
            row = result.scalar_one()
        return mapper.model_to_entity(row)

    async def mark_read(self, sender: str, recipient: str) -> int:
        # Only unread rows are touched, so a repeat call changes nothing.
        stmt = (
            update(MessageModel)
            .where(
                MessageModel.sender == sender,
                MessageModel.recipient == recipient,
                MessageModel.is_read.is_(False),
            )
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        with storage_errors("mark_read"):
            result = await self._session.execute(stmt)
        return result.rowcount or 0
