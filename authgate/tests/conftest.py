"""
Shared fixtures for the authentication gate tests.

Required environment variables are set before any authgate module is
imported, since authgate.main builds its app at import time.
"""

import os

os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id.apps.googleusercontent.com")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-google-client-secret")
os.environ.setdefault("SESSION_SECRET", "test-session-secret-0123456789abcdef")

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from urllib.parse import parse_qs, urlencode, urlsplit

import pytest
from fastapi.testclient import TestClient

from authgate.auth.provider import IdentityProvider
from authgate.config import load_settings
from authgate.exceptions import UpstreamAuthError
from authgate.main import create_app
from authgate.models import Identity
from authgate.sessions.pending import InMemoryPendingLoginStore
from authgate.sessions.store import InMemorySessionStore

FRONTEND = "http://frontend.test:3000"


class FakeClock:
    """Manually advanced UTC clock"""

    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeIdentityProvider(IdentityProvider):
    """
    Stand-in for Google: each registered code yields its identity once.
    """

    def __init__(self):
        self.codes: Dict[str, Identity] = {}
        self.used: set = set()
        self.exchanges: List[str] = []
        self.nonces: List[Optional[str]] = []
        self.closed = False

    def authorization_url(self, state: str, nonce: str) -> str:
        query = urlencode({"state": state, "nonce": nonce, "scope": "openid profile email"})
        return f"https://provider.test/consent?{query}"

    async def exchange_code(self, code: str, nonce: Optional[str] = None) -> Identity:
        self.exchanges.append(code)
        self.nonces.append(nonce)
        if code in self.used or code not in self.codes:
            raise UpstreamAuthError("invalid_grant")
        self.used.add(code)
        return self.codes[code]

    async def aclose(self) -> None:
        self.closed = True


def state_from_location(location: str) -> str:
    return parse_qs(urlsplit(location).query)["state"][0]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return load_settings(
        GOOGLE_CLIENT_ID="test-client-id.apps.googleusercontent.com",
        GOOGLE_CLIENT_SECRET="test-google-client-secret",
        SESSION_SECRET="test-session-secret-0123456789abcdef",
        BACKEND_ORIGIN="http://testserver",
        FRONTEND_ORIGIN=FRONTEND,
    )


@pytest.fixture
def provider():
    return FakeIdentityProvider()


@pytest.fixture
def session_store(clock):
    return InMemorySessionStore(
        idle_timeout=timedelta(minutes=30),
        absolute_timeout=timedelta(hours=8),
        clock=clock,
    )


@pytest.fixture
def pending_store(clock):
    return InMemoryPendingLoginStore(ttl=timedelta(minutes=5), clock=clock)


@pytest.fixture
def app(settings, session_store, pending_store, provider):
    return create_app(
        settings,
        session_store=session_store,
        pending_store=pending_store,
        provider=provider,
    )


@pytest.fixture
def client(app):
    with TestClient(app, follow_redirects=False) as test_client:
        yield test_client


@pytest.fixture
def ada():
    return Identity(
        id="google-sub-1815",
        display_name="Ada Lovelace",
        email="ada@lovelace.org",
        avatar_url="https://images.lovelace.org/ada.png",
    )


@pytest.fixture
def grace():
    return Identity(id="google-sub-1906", display_name="Grace Hopper", email=None, avatar_url=None)
