"""
Session Package

Server-side session state and the signed cookies that point at it.

Modules:
- store: SessionStore interface and the in-memory implementation
- pending: single-use pending login attempts (state + nonce)
- cookies: HS256-signed cookie values for sessions and pending logins
"""

from .pending import InMemoryPendingLoginStore, PendingLoginStore, build_pending_store
from .store import InMemorySessionStore, SessionStore, build_session_store

__all__ = [
    "SessionStore",
    "InMemorySessionStore",
    "build_session_store",
    "PendingLoginStore",
    "InMemoryPendingLoginStore",
    "build_pending_store",
]
