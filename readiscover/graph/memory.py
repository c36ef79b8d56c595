"""
memory.py
---------
Process-lifetime session store.

Sessions live only in memory. Expiry is not timer driven: every request that
touches the registry calls `sweep()` first, which drops sessions idle for
longer than the timeout. The map is guarded by one lock; that lock is never
held while a turn talks to the completion provider (turns serialize on the
per-session lock instead, see `Session.lock`).
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, List

from ..errors import SessionNotFoundError
from ..models import Session

logger = logging.getLogger(__name__)

SESSION_TIMEOUT = 30 * 60


class SessionRegistry:
    def __init__(self, timeout_seconds: float = SESSION_TIMEOUT, clock: Callable[[], float] = time.time) -> None:
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def now(self) -> float:
        return self._clock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def sweep(self) -> List[str]:
        """Evict sessions idle for longer than the timeout. Returns evicted ids."""
        cutoff = self.now() - self.timeout_seconds
        with self._lock:
            expired = [sid for sid, s in self._sessions.items() if s.last_activity < cutoff]
            for sid in expired:
                del self._sessions[sid]
        for sid in expired:
            logger.info("Cleaned up expired session: %s", sid)
        return expired

    def add(self, session: Session) -> None:
        session.touch(self.now())
        with self._lock:
            if session.id in self._sessions:
                raise ValueError(f"Session id already registered: {session.id}")
            self._sessions[session.id] = session

    def get(self, session_id: str) -> Session:
        """Look up a live session and refresh its last activity."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            session.touch(self.now())
            return session

    def remove(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None
