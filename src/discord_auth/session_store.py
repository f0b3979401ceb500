# src/discord_auth/session_store.py

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable, Dict, Optional

from loguru import logger

from .session_data import SessionData

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionStore:
    """
    In-memory session records keyed by session ID.

    Each key has its own asyncio.Lock; flow operations hold it for their whole
    duration so validation and mutation of one session never interleave.
    A lock lives only while its session exists or someone holds or waits on it.
    Also remembers which authorization codes were already sent to the
    provider, so a code is exchanged at most once per process.
    """

    def __init__(
        self,
        ttl_seconds: int = 60 * 60 * 4,
        code_reuse_window_seconds: int = 600,
        clock: Clock = utc_now,
    ):
        self._ttl = timedelta(seconds=ttl_seconds)
        self._code_window = timedelta(seconds=code_reuse_window_seconds)
        self._clock = clock
        self._sessions: Dict[str, SessionData] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self._redeemed_codes: Dict[str, datetime] = {}

    def now(self) -> datetime:
        return self._clock()

    @asynccontextmanager
    async def locked(self, session_id: str) -> AsyncIterator[None]:
        """Hold the lock for session_id; the lock entry is dropped with its last user once the session is gone."""
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._lock_users[session_id] - 1
            if remaining:
                self._lock_users[session_id] = remaining
            else:
                del self._lock_users[session_id]
                if session_id not in self._sessions:
                    del self._locks[session_id]

    def in_use(self, session_id: str) -> bool:
        return session_id in self._lock_users

    def get(self, session_id: str) -> SessionData:
        """Return the record for session_id, creating an empty one if needed."""
        self.purge_expired()
        session = self._sessions.get(session_id)
        if session is None:
            session = self._sessions[session_id] = SessionData()
        session.last_seen = self._clock()
        return session

    def peek(self, session_id: str) -> Optional[SessionData]:
        return self._sessions.get(session_id)

    def discard(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        if not self.in_use(session_id):
            self._locks.pop(session_id, None)

    def purge_expired(self) -> int:
        cutoff = self._clock() - self._ttl
        stale = [
            sid for sid, s in self._sessions.items()
            if s.last_seen is not None and s.last_seen < cutoff and not self.in_use(sid)
        ]
        for sid in stale:
            self.discard(sid)
        if stale:
            logger.debug(f"SESSION_STORE: Evicted {len(stale)} idle session(s)")
        return len(stale)

    def mark_code_redeemed(self, code: str) -> bool:
        """Record code as redeemed. Returns False if it was already redeemed."""
        now = self._clock()
        cutoff = now - self._code_window
        for old in [c for c, at in self._redeemed_codes.items() if at < cutoff]:
            del self._redeemed_codes[old]
        if code in self._redeemed_codes:
            return False
        self._redeemed_codes[code] = now
        return True

    def __len__(self) -> int:
        return len(self._sessions)
