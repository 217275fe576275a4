"""
Pending login attempts.

Each /auth/start records a (state, nonce) pair here. The callback pops it, so
a state value can be accepted at most once; unanswered attempts expire.
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from authgate.models import PendingLogin, utcnow

logger = logging.getLogger(__name__)


class PendingLoginStore(ABC):
    """Interface for pending login storage."""

    @abstractmethod
    async def issue(self, state: str, nonce: str) -> PendingLogin:
        """Record a new attempt."""

    @abstractmethod
    async def consume(self, state: str) -> Optional[PendingLogin]:
        """Atomically remove and return a live attempt, or None."""

    @abstractmethod
    async def purge_expired(self) -> int:
        """Drop expired attempts and return how many were removed."""


class InMemoryPendingLoginStore(PendingLoginStore):
    """Process-local pending login table with a fixed time-to-live."""

    def __init__(
        self,
        ttl: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] = utcnow,
    ):
        self._attempts: Dict[str, PendingLogin] = {}
        self._lock = threading.Lock()
        self.ttl = ttl
        self._clock = clock

    async def issue(self, state: str, nonce: str) -> PendingLogin:
        now = self._clock()
        attempt = PendingLogin(state=state, nonce=nonce, created_at=now, expires_at=now + self.ttl)
        with self._lock:
            self._attempts[state] = attempt
        return attempt

    async def consume(self, state: str) -> Optional[PendingLogin]:
        if not state:
            return None

        with self._lock:
            attempt = self._attempts.pop(state, None)

        if attempt is None:
            return None
        if self._clock() >= attempt.expires_at:
            logger.info("Pending login expired before callback")
            return None
        return attempt

    async def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [s for s, a in self._attempts.items() if now >= a.expires_at]
            for state in expired:
                del self._attempts[state]
        return len(expired)


def build_pending_store(settings) -> PendingLoginStore:
    return InMemoryPendingLoginStore(ttl=timedelta(seconds=settings.PENDING_LOGIN_TTL_SECONDS))
