"""Translate driver failures into the application's ``StorageError``."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError

from message_relay.application.exceptions import StorageError


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except (SQLAlchemyError, OSError) as exc:
        raise StorageError(f"{operation} failed: {exc.__class__.__name__}") from exc
