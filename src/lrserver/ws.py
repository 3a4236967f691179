# ws.py -- Registry of live LiveReload connections
# In-memory connection set guarded by a lock. Single-process only.

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .connection import Connection

log = logging.getLogger(__name__)


class ConnectionRegistry:
    """Set of connections eligible to receive broadcasts."""

    def __init__(self) -> None:
        self._connections: set[Connection] = set()
        self._lock = threading.Lock()

    def add(self, conn: Connection) -> None:
        with self._lock:
            self._connections.add(conn)
            total = len(self._connections)
        log.debug("Connection %s registered (%d total)", conn.id, total)

    def remove(self, conn: Connection) -> None:
        with self._lock:
            if conn not in self._connections:
                return
            self._connections.discard(conn)
            total = len(self._connections)
        log.debug("Connection %s removed (%d total)", conn.id, total)

    def snapshot(self) -> list[Connection]:
        with self._lock:
            return list(self._connections)

    def for_each(self, fn: Callable[[Connection], object]) -> None:
        """Call ``fn`` once per registered connection.

        Iterates a copy taken under the lock, so ``fn`` may itself add or
        remove connections without deadlocking.
        """
        for conn in self.snapshot():
            fn(conn)

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def __contains__(self, conn: object) -> bool:
        with self._lock:
            return conn in self._connections
