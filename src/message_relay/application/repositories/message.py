from __future__ import annotations

from typing import Protocol

from message_relay.domain.entities.message import Message


class MessageReader(Protocol):
    async def find_between(self, user_a: str, user_b: str) -> list[Message]:
        """All messages exchanged by the unordered pair, oldest first."""
        ...

    async def find_for_participant(self, user_id: str) -> list[Message]:
        """All messages the user sent or received, oldest first."""
        ...

    async def count_unread(self, user_id: str, *, sender: str | None = None) -> int: ...

    async def count_unread_by_sender(self, user_id: str) -> dict[str, int]: ...


class MessageWriter(Protocol):
    async def append(self, message: Message) -> Message: ...

    async def mark_read(self, sender: str, recipient: str) -> int:
        """Flip ``is_read`` on unread messages from sender to recipient. Returns rows changed."""
        ...
