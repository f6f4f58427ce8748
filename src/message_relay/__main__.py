"""Entrypoint: python -m message_relay"""
from __future__ import annotations

import uvicorn

from message_relay.config import settings
from message_relay.logging_setup import configure_logging


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    uvicorn.run(
        "message_relay.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level=settings.LOG_LEVEL,
        log_config=None,
    )


if __name__ == "__main__":
    main()
