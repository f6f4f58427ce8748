from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SystemClock:
    """UTC wall clock whose readings strictly increase.

    Conversations are ordered by ``(created_at, id)``, so two messages stamped
    by the same clock must never share an instant or run backwards when the
    system time is adjusted. Ties are broken by one microsecond, the
    resolution of a PostgreSQL timestamp.
    """

    _TICK = timedelta(microseconds=1)

    def __init__(self, source: Callable[[], datetime] = _utcnow) -> None:
        self._source = source
        self._last: datetime | None = None
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            current = self._source()
            if self._last is not None and current <= self._last:
                current = self._last + self._TICK
            self._last = current
            return current
