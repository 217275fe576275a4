"""
Session Store
=============

Server-side session records keyed by an opaque identifier.

The gate only talks to the abstract ``SessionStore``; ``InMemorySessionStore``
is the single-process implementation. It is NOT shared between workers or
hosts, so deployments with more than one instance need another store.

Expiry policy:
    - idle timeout: a session not read for ``idle_timeout`` is gone
    - absolute timeout: a session older than ``absolute_timeout`` is gone
Expired sessions are dropped lazily on read and in bulk by ``purge_expired``.
"""

import logging
import secrets
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from authgate.models import Identity, Session, utcnow

logger = logging.getLogger(__name__)

# 32 random bytes, well above the 128-bit minimum for session identifiers
SESSION_ID_BYTES = 32


def generate_session_id() -> str:
    return secrets.token_urlsafe(SESSION_ID_BYTES)


class SessionStore(ABC):
    """Interface for session storage backends."""

    @abstractmethod
    async def create(self, identity: Identity) -> Session:
        """Create a session for ``identity`` under a fresh identifier."""

    @abstractmethod
    async def get(self, session_id: str) -> Optional[Session]:
        """Return the live session, or None if absent or expired."""

    @abstractmethod
    async def destroy(self, session_id: str) -> None:
        """Remove a session. Removing an absent session is not an error."""

    @abstractmethod
    async def purge_expired(self) -> int:
        """Drop expired sessions and return how many were removed."""

    @abstractmethod
    async def count(self) -> int:
        """Number of sessions currently held."""


class InMemorySessionStore(SessionStore):
    """
    Process-local session store.

    A threading lock guards the map so handlers running on the event loop and
    in the threadpool see consistent records.

    Attributes:
        idle_timeout: Maximum time between reads
        absolute_timeout: Maximum session lifetime
    """

    def __init__(
        self,
        idle_timeout: timedelta = timedelta(minutes=30),
        absolute_timeout: timedelta = timedelta(hours=8),
        clock: Callable[[], datetime] = utcnow,
    ):
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()
        self.idle_timeout = idle_timeout
        self.absolute_timeout = absolute_timeout
        self._clock = clock

    def _is_expired(self, session: Session, now: datetime) -> bool:
        if now - session.created_at >= self.absolute_timeout:
            return True
        return now - session.last_seen_at >= self.idle_timeout

    async def create(self, identity: Identity) -> Session:
        now = self._clock()
        with self._lock:
            session_id = generate_session_id()
            while session_id in self._sessions:
                session_id = generate_session_id()
            session = Session(
                session_id=session_id,
                identity=identity,
                created_at=now,
                last_seen_at=now,
            )
            self._sessions[session_id] = session

        logger.info(
            "Session created",
            extra={"user_id": identity.id, "active_sessions": len(self._sessions)}
        )
        return session.model_copy()

    async def get(self, session_id: str) -> Optional[Session]:
        if not session_id:
            return None

        now = self._clock()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None

            if self._is_expired(session, now):
                del self._sessions[session_id]
                logger.info("Session expired", extra={"user_id": session.identity.id})
                return None

            session.last_seen_at = now
            return session.model_copy()

    async def destroy(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_id, None)

        if session is not None:
            logger.info("Session destroyed", extra={"user_id": session.identity.id})

    async def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [sid for sid, s in self._sessions.items() if self._is_expired(s, now)]
            for sid in expired:
                del self._sessions[sid]

        if expired:
            logger.debug(f"Purged {len(expired)} expired sessions")
        return len(expired)

    async def count(self) -> int:
        with self._lock:
            return len(self._sessions)


def build_session_store(settings) -> SessionStore:
    """Create the default store with the configured expiry policy."""
    return InMemorySessionStore(
        idle_timeout=timedelta(minutes=settings.SESSION_IDLE_TIMEOUT_MINUTES),
        absolute_timeout=timedelta(minutes=settings.SESSION_ABSOLUTE_TIMEOUT_MINUTES),
    )


__all__ = [
    "SessionStore",
    "InMemorySessionStore",
    "build_session_store",
    "generate_session_id",
]
