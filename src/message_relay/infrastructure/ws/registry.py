"""In-process registry of live connections, one per user."""
from __future__ import annotations

import logging
import threading
from typing import Any

from message_relay.application.ports.connections import LiveConnection

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Maps user id to that user's latest live connection.

    Last registration wins: a second connection for the same user replaces
    the first in the map, and the old handle is left to prune itself when it
    disconnects. ``remove`` only evicts an entry still pointing at the handle
    being removed, so a late disconnect can't knock out a newer connection.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_user: dict[str, LiveConnection] = {}
        self._by_handle: dict[str, str] = {}

    def register(self, user_id: str, handle: LiveConnection) -> LiveConnection | None:
        """Bind ``handle`` to ``user_id`` and return the handle it replaced, if any."""
        with self._lock:
            previous_user = self._by_handle.get(handle.handle_id)
            if previous_user is not None and previous_user != user_id:
                # The handle is re-joining as someone else.
                if self._by_user.get(previous_user) is handle:
                    del self._by_user[previous_user]
            replaced = self._by_user.get(user_id)
            self._by_user[user_id] = handle
            self._by_handle[handle.handle_id] = user_id
        if replaced is handle:
            return None
        if replaced is not None:
            logger.info("Connection %s for %s superseded by %s", replaced.handle_id, user_id, handle.handle_id)
        logger.debug("Registered %s as %s (online=%d)", handle.handle_id, user_id, len(self))
        return replaced

    def lookup(self, user_id: str) -> LiveConnection | None:
        with self._lock:
            return self._by_user.get(user_id)

    def remove(self, handle: LiveConnection) -> bool:
        """Forget ``handle``. Returns True if it was the user's current connection."""
        with self._lock:
            user_id = self._by_handle.pop(handle.handle_id, None)
            if user_id is None:
                return False
            if self._by_user.get(user_id) is not handle:
                return False
            del self._by_user[user_id]
        logger.debug("Unregistered %s (%s)", handle.handle_id, user_id)
        return True

    def online_users(self) -> list[str]:
        with self._lock:
            return sorted(self._by_user)

    def handles(self) -> list[LiveConnection]:
        with self._lock:
            return list(self._by_user.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_user)

    async def broadcast(self, event: str, data: Any = None) -> int:
        """Push an event to every registered connection; returns how many got it."""
        sent = 0
        dead: list[LiveConnection] = []
        for handle in self.handles():
            try:
                await handle.emit(event, data)
            except Exception:  # noqa: BLE001
                dead.append(handle)
            else:
                sent += 1
        for handle in dead:
            logger.debug("Dropping unreachable connection %s", handle.handle_id)
            self.remove(handle)
        return sent
