from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from uuid import UUID

# Width of the sender and recipient columns.
USER_ID_MAX_LENGTH = 128


@dataclass(frozen=True, slots=True)
class Message:
    """A private message between two users.

    Immutable apart from ``is_read``, which only ever moves from False to True.
    """

    id: UUID
    sender: str
    recipient: str
    body: str
    is_read: bool
    created_at: datetime

    def involves(self, user_id: str) -> bool:
        return user_id in (self.sender, self.recipient)

    def mark_read(self) -> Message:
        if self.is_read:
            return self
        return replace(self, is_read=True)
