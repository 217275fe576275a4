"""
Signed Cookie Tokens
====================

Session and pending-login cookies carry HS256 JWTs signed with
SESSION_SECRET. The browser never sees identity data, only:

    session cookie:  {"typ": "session", "sid": <session id>, "iat": ...}
    pending cookie:  {"typ": "pending", "state": <state>, "iat": ..., "exp": ...}

The ``typ`` claim keeps one kind of token from being accepted as the other.
Expiry of sessions is owned by the session store, so session tokens carry no
``exp``.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
ISSUER = "authgate"

SESSION_TOKEN_TYPE = "session"
PENDING_TOKEN_TYPE = "pending"


# =============================================================================
# Exceptions
# =============================================================================

class CookieTokenError(Exception):
    """Cookie token is missing, tampered with, expired, or of the wrong type"""
    pass


# =============================================================================
# Encoding
# =============================================================================

def _encode(payload: Dict[str, Any], secret: str) -> str:
    payload = payload.copy()
    payload.update({
        "iat": datetime.now(timezone.utc),
        "iss": ISSUER,
    })
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def encode_session_token(session_id: str, secret: str) -> str:
    """Wrap a session id in a signed cookie value."""
    return _encode({"typ": SESSION_TOKEN_TYPE, "sid": session_id}, secret)


def encode_pending_token(state: str, secret: str, ttl: timedelta) -> str:
    """
    Bind a login state to this browser with a short-lived signed cookie value.

    Args:
        state: Correlation token sent to the provider
        secret: SESSION_SECRET value
        ttl: Lifetime of the pending login
    """
    return _encode(
        {
            "typ": PENDING_TOKEN_TYPE,
            "state": state,
            "exp": datetime.now(timezone.utc) + ttl,
        },
        secret,
    )


# =============================================================================
# Decoding
# =============================================================================

def _decode(token: Optional[str], secret: str, expected_type: str) -> Dict[str, Any]:
    """
    Verify and decode a cookie token.

    Raises:
        CookieTokenError: With a short reason suitable for logs
    """
    if not token:
        raise CookieTokenError("No cookie token provided")

    try:
        decoded = jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            issuer=ISSUER,
            options={"require": ["iat", "iss", "typ"]},
        )
    except ExpiredSignatureError:
        raise CookieTokenError("Cookie token has expired") from None
    except InvalidTokenError as e:
        raise CookieTokenError(f"Invalid cookie token: {e}") from None

    if decoded.get("typ") != expected_type:
        raise CookieTokenError(f"Expected {expected_type} token, got {decoded.get('typ')}")

    return decoded


def decode_session_token(token: Optional[str], secret: str) -> str:
    """Return the session id carried by a session cookie."""
    decoded = _decode(token, secret, SESSION_TOKEN_TYPE)
    session_id = decoded.get("sid")
    if not session_id:
        raise CookieTokenError("Session token missing 'sid'")
    return session_id


def decode_pending_token(token: Optional[str], secret: str) -> str:
    """Return the state carried by a pending-login cookie."""
    decoded = _decode(token, secret, PENDING_TOKEN_TYPE)
    state = decoded.get("state")
    if not state:
        raise CookieTokenError("Pending token missing 'state'")
    return state


__all__ = [
    "CookieTokenError",
    "encode_session_token",
    "encode_pending_token",
    "decode_session_token",
    "decode_pending_token",
]
