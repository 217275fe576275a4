"""
Authentication Package

This package implements the session-backed authentication gate on top of
Google OpenID Connect.

Modules:
- gate: the login / callback / who-am-I / logout state machine
- provider: identity provider adapters (Google code exchange + ID token checks)
- routes: HTTP endpoints (/auth/start, /auth/callback, /whoami, /logout)

The authentication flow:
1. Browser navigates to /auth/start and is sent to Google with a fresh state
2. User authenticates with Google
3. Google redirects to /auth/callback with code and state
4. Gate checks the state, exchanges the code, creates a session
5. Browser sends the session cookie; /whoami returns the identity
"""

from .gate import AuthGate
from .provider import GoogleIdentityProvider, IdentityProvider
from .routes import auth_router, session_router

__all__ = [
    "AuthGate",
    "IdentityProvider",
    "GoogleIdentityProvider",
    "auth_router",
    "session_router",
]
