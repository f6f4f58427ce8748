"""Create the relay's tables from ORM metadata."""
from __future__ import annotations

import asyncio
import logging

from message_relay.infrastructure.db import models  # noqa: F401
from message_relay.infrastructure.db.base import Base
from message_relay.infrastructure.db.session import engine

logger = logging.getLogger(__name__)


async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    logger.info("Created tables: %s", ", ".join(sorted(Base.metadata.tables)))


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(init_db())


if __name__ == "__main__":
    main()
