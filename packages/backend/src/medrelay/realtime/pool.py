"""Connection pool — process-wide registry of live sessions.

Learn: Every accepted websocket gets a connection id, unique among the
sessions that are currently open. The pool is the only cross-session
state in the process; a threading.Lock guards it so ids stay unique even
if connections are accepted from several worker threads.

Entries leave the pool when their session closes (the session calls
unregister through its on_close callback).
"""

import asyncio
import threading
import uuid
from typing import TYPE_CHECKING, Callable, Optional

import structlog

if TYPE_CHECKING:
    from medrelay.realtime.session import Session

logger = structlog.get_logger()


def new_connection_id() -> str:
    return uuid.uuid4().hex


class ConnectionPool:
    """connection id → Session."""

    def __init__(self, id_factory: Optional[Callable[[], str]] = None):
        self._sessions: dict[str, "Session"] = {}
        self._lock = threading.Lock()
        self._new_id = id_factory or new_connection_id

    def register(self, session_factory: Callable[[str], "Session"]) -> str:
        """Create a session under a fresh connection id and return the id."""
        with self._lock:
            connection_id = self._new_id()
            while connection_id in self._sessions:
                connection_id = self._new_id()
            self._sessions[connection_id] = session_factory(connection_id)
            size = len(self._sessions)
        logger.info("pool.registered", connection_id=connection_id, size=size)
        return connection_id

    def unregister(self, connection_id: str) -> None:
        with self._lock:
            removed = self._sessions.pop(connection_id, None)
            size = len(self._sessions)
        if removed is not None:
            logger.info("pool.unregistered", connection_id=connection_id, size=size)

    def get(self, connection_id: str) -> Optional["Session"]:
        with self._lock:
            return self._sessions.get(connection_id)

    async def close_all(self) -> None:
        """Close every open session (shutdown)."""
        with self._lock:
            sessions = list(self._sessions.values())
        if sessions:
            await asyncio.gather(
                *(session.close() for session in sessions), return_exceptions=True
            )

    def __contains__(self, connection_id: object) -> bool:
        with self._lock:
            return connection_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
