"""Mint a development JWT the relay will accept.

    python -m message_relay.scripts.issue_token alice --minutes 60
"""
from __future__ import annotations

import argparse
from datetime import datetime, timedelta, timezone

import jwt

from message_relay.config import settings


def issue_token(user_id: str, minutes: int = 15) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        settings.JWT_USER_CLAIM: user_id,
        "iat": now,
        "exp": now + timedelta(minutes=minutes),
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("user_id")
    parser.add_argument("--minutes", type=int, default=15)
    args = parser.parse_args()
    print(issue_token(args.user_id, args.minutes))


if __name__ == "__main__":
    main()
