from __future__ import annotations

from types import TracebackType
from typing import Self

from sqlalchemy.ext.asyncio import AsyncSession

from message_relay.infrastructure.db.errors import storage_errors
from message_relay.infrastructure.db.repositories.message import (
    MessageReaderRepo,
    MessageWriterRepo,
)


class SqlAlchemyUoW:
    """Concrete Unit-of-Work backed by a single AsyncSession."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self.messages = MessageReaderRepo(session)
        self.messages_w = MessageWriterRepo(session)

    async def flush(self) -> None:
        with storage_errors("flush"):
            await self._session.flush()

    async def commit(self) -> None:
        with storage_errors("commit"):
            await self._session.commit()

    async def rollback(self) -> None:
        with storage_errors("rollback"):
            await self._session.rollback()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            await self._session.rollback()
