"""Shared test fixtures."""
from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator

import jwt
import pytest

from message_relay.application.dto.principal import Principal
from message_relay.application.exceptions import StorageError
from message_relay.config import settings
from message_relay.domain.entities.message import Message

BASE_TIME = datetime(2026, 1, 5, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def alice() -> Principal:
    return Principal(user_id="alice")


@pytest.fixture
def bob() -> Principal:
    return Principal(user_id="bob")


def make_token(
    user_id: str = "alice",
    *,
    minutes: int = 15,
    secret: str | None = None,
    claim: str = "id",
    include_exp: bool = True,
) -> str:
    now = datetime.now(timezone.utc)
    claims: dict[str, Any] = {claim: user_id, "iat": now}
    if include_exp:
        claims["exp"] = now + timedelta(minutes=minutes)
    return jwt.encode(
        claims,
        secret or settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


def make_message(
    *,
    sender: str = "alice",
    recipient: str = "bob",
    body: str = "hello",
    is_read: bool = False,
    created_at: datetime | None = None,
) -> Message:
    return Message(
        id=uuid.uuid4(),
        sender=sender,
        recipient=recipient,
        body=body,
        is_read=is_read,
        created_at=created_at or BASE_TIME,
    )


class SteppingClock:
    """Returns BASE_TIME, then one millisecond later on every call."""

    def __init__(self, start: datetime = BASE_TIME) -> None:
        self._next = start

    def now(self) -> datetime:
        current = self._next
        self._next += timedelta(milliseconds=1)
        return current


@dataclass
class FakeMessageStore:
    """Committed rows shared by every FakeUoW built on top of it."""

    rows: list[Message] = field(default_factory=list)
    fail_writes: bool = False
    fail_reads: bool = False

    def _check(self, writing: bool) -> None:
        if writing and self.fail_writes:
            raise StorageError("store unreachable")
        if not writing and self.fail_reads:
            raise StorageError("store unreachable")

    def unread_for(self, user_id: str) -> list[Message]:
        return [m for m in self.rows if m.recipient == user_id and not m.is_read]


def _timeline(messages: list[Message]) -> list[Message]:
    return sorted(messages, key=lambda m: (m.created_at, str(m.id)))


@dataclass
class FakeMessageReader:
    _store: FakeMessageStore

    async def find_between(self, user_a: str, user_b: str) -> list[Message]:
        self._store._check(writing=False)
        return _timeline([
            m for m in self._store.rows
            if (m.sender, m.recipient) in ((user_a, user_b), (user_b, user_a))
        ])

    async def find_for_participant(self, user_id: str) -> list[Message]:
        self._store._check(writing=False)
        return _timeline([m for m in self._store.rows if m.involves(user_id)])

    async def count_unread(self, user_id: str, *, sender: str | None = None) -> int:
        self._store._check(writing=False)
        return sum(
            1 for m in self._store.unread_for(user_id)
            if sender is None or m.sender == sender
        )

    async def count_unread_by_sender(self, user_id: str) -> dict[str, int]:
        self._store._check(writing=False)
        counts: dict[str, int] = {}
        for m in self._store.unread_for(user_id):
            counts[m.sender] = counts.get(m.sender, 0) + 1
        return counts


@dataclass
class FakeMessageWriter:
    _store: FakeMessageStore
    _pending: list[Message] = field(default_factory=list)

    async def append(self, message: Message) -> Message:
        self._store._check(writing=True)
        self._pending.append(message)
        return message

    async def mark_read(self, sender: str, recipient: str) -> int:
        self._store._check(writing=True)
        modified = 0
        for i, m in enumerate(self._store.rows):
            if m.sender == sender and m.recipient == recipient and not m.is_read:
                self._store.rows[i] = m.mark_read()
                modified += 1
        return modified


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests. Appends become visible on commit."""

    store: FakeMessageStore = field(default_factory=FakeMessageStore)
    messages: FakeMessageReader | None = None
    messages_w: FakeMessageWriter | None = None
    commits: int = 0
    rollbacks: int = 0

    def __post_init__(self) -> None:
        if self.messages is None:
            self.messages = FakeMessageReader(self.store)
        if self.messages_w is None:
            self.messages_w = FakeMessageWriter(self.store)

    @property
    def _committed(self) -> bool:
        return self.commits > 0

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self.store._check(writing=True)
        self.store.rows.extend(self.messages_w._pending)
        self.messages_w._pending.clear()
        self.commits += 1

    async def rollback(self) -> None:
        self.messages_w._pending.clear()
        self.rollbacks += 1

    async def __aenter__(self) -> FakeUoW:
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if exc_type is not None:
            await self.rollback()


def fake_uow_factory(store: FakeMessageStore):
    """Mirror of ``open_uow``: a fresh unit of work over the shared store."""

    @asynccontextmanager
    async def _open() -> AsyncIterator[FakeUoW]:
        async with FakeUoW(store=store) as uow:
            yield uow

    return _open


@dataclass
class FakeConnection:
    """Records everything pushed to it; can be told to fail like a dead socket."""

    handle_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    events: list[tuple[str, Any]] = field(default_factory=list)
    fail: bool = False
    closed_with: int | None = None

    async def emit(self, event: str, data: Any = None) -> None:
        if self.fail:
            raise ConnectionResetError("peer gone")
        self.events.append((str(event), data))

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed_with = code

    def of_type(self, event: str) -> list[Any]:
        return [data for name, data in self.events if name == event]


@pytest.fixture
def store() -> FakeMessageStore:
    return FakeMessageStore()


@pytest.fixture
def uow(store: FakeMessageStore) -> FakeUoW:
    return FakeUoW(store=store)
