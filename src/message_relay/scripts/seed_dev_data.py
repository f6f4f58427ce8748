"""Seed development data: a short conversation between two sample users."""
from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone

from message_relay.domain.entities.message import Message
from message_relay.infrastructure.db.session import AsyncSessionLocal
from message_relay.infrastructure.db.uow import SqlAlchemyUoW

logger = logging.getLogger(__name__)

CONVERSATION = [
    ("alice", "bob", "Hi Bob, I saw your proposal for the landing page job."),
    ("bob", "alice", "Thanks! I can start on Monday."),
    ("alice", "bob", "Great. Can you share a couple of past projects?"),
    ("bob", "alice", "Sure, sending links shortly."),
]


async def seed() -> None:
    async with AsyncSessionLocal() as session:
        uow = SqlAlchemyUoW(session)
        start = datetime.now(timezone.utc) - timedelta(minutes=len(CONVERSATION))

        for offset, (sender, recipient, body) in enumerate(CONVERSATION):
            # The last message stays unread so the badge has something to show.
            is_read = offset < len(CONVERSATION) - 1
            await uow.messages_w.append(
                Message(
                    id=uuid.uuid4(),
                    sender=sender,
                    recipient=recipient,
                    body=body,
                    is_read=is_read,
                    created_at=start + timedelta(minutes=offset),
                )
            )

        await uow.commit()
        logger.info("Seeded %d messages between alice and bob", len(CONVERSATION))


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed())


if __name__ == "__main__":
    main()
