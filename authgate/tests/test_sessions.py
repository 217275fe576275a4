"""
Session Storage Tests

Covers the in-memory session store expiry policy, single-use pending
logins, and the signed cookie tokens.
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from authgate.sessions.cookies import (
    CookieTokenError,
    decode_pending_token,
    decode_session_token,
    encode_pending_token,
    encode_session_token,
)
from authgate.sessions.store import generate_session_id

SECRET = "unit-test-signing-secret-0123456789abcdef"


class TestSessionStore:

    @pytest.mark.asyncio
    async def test_create_and_get(self, session_store, ada):
        session = await session_store.create(ada)

        fetched = await session_store.get(session.session_id)

        assert fetched.identity == ada
        assert fetched.session_id == session.session_id
        assert await session_store.count() == 1

    @pytest.mark.asyncio
    async def test_session_ids_are_unique_and_long(self, session_store, ada):
        ids = {(await session_store.create(ada)).session_id for _ in range(50)}

        assert len(ids) == 50
        assert all(len(sid) >= 43 for sid in ids)

    def test_generate_session_id_is_urlsafe(self):
        sid = generate_session_id()
        assert set(sid) <= set("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_")

    @pytest.mark.asyncio
    async def test_get_unknown_or_empty(self, session_store):
        assert await session_store.get("no-such-session") is None
        assert await session_store.get("") is None

    @pytest.mark.asyncio
    async def test_destroy_is_idempotent(self, session_store, ada):
        session = await session_store.create(ada)

        await session_store.destroy(session.session_id)
        await session_store.destroy(session.session_id)

        assert await session_store.get(session.session_id) is None

    @pytest.mark.asyncio
    async def test_idle_timeout_resets_on_read(self, session_store, clock, ada):
        session = await session_store.create(ada)

        clock.advance(minutes=25)
        assert await session_store.get(session.session_id) is not None
        clock.advance(minutes=25)
        assert await session_store.get(session.session_id) is not None
        clock.advance(minutes=30)

        assert await session_store.get(session.session_id) is None
        assert await session_store.count() == 0

    @pytest.mark.asyncio
    async def test_absolute_timeout(self, session_store, clock, ada):
        session = await session_store.create(ada)

        for _ in range(16):
            clock.advance(minutes=29)
            assert await session_store.get(session.session_id) is not None

        clock.advance(minutes=16)
        assert await session_store.get(session.session_id) is None

    @pytest.mark.asyncio
    async def test_returned_session_is_a_copy(self, session_store, ada):
        session = await session_store.create(ada)
        session.last_seen_at = datetime(2000, 1, 1, tzinfo=timezone.utc)

        assert await session_store.get(session.session_id) is not None

    @pytest.mark.asyncio
    async def test_purge_expired(self, session_store, clock, ada, grace):
        stale = await session_store.create(ada)
        clock.advance(minutes=20)
        fresh = await session_store.create(grace)
        clock.advance(minutes=15)

        removed = await session_store.purge_expired()

        assert removed == 1
        assert await session_store.get(stale.session_id) is None
        assert await session_store.get(fresh.session_id) is not None


class TestPendingLoginStore:

    @pytest.mark.asyncio
    async def test_consume_once(self, pending_store):
        await pending_store.issue("state-1", "nonce-1")

        first = await pending_store.consume("state-1")
        second = await pending_store.consume("state-1")

        assert first.nonce == "nonce-1"
        assert second is None

    @pytest.mark.asyncio
    async def test_unknown_state(self, pending_store):
        assert await pending_store.consume("never-issued") is None
        assert await pending_store.consume("") is None

    @pytest.mark.asyncio
    async def test_expired_attempt_is_refused_and_removed(self, pending_store, clock):
        await pending_store.issue("state-1", "nonce-1")
        clock.advance(minutes=5)

        assert await pending_store.consume("state-1") is None
        assert await pending_store.purge_expired() == 0

    @pytest.mark.asyncio
    async def test_purge_expired(self, pending_store, clock):
        await pending_store.issue("old", "n1")
        clock.advance(minutes=4)
        await pending_store.issue("new", "n2")
        clock.advance(minutes=2)

        assert await pending_store.purge_expired() == 1
        assert await pending_store.consume("new") is not None


class TestCookieTokens:

    def test_session_token_round_trip(self):
        token = encode_session_token("sid-123", SECRET)
        assert decode_session_token(token, SECRET) == "sid-123"

    def test_session_token_carries_no_identity(self):
        token = encode_session_token("sid-123", SECRET)
        claims = jwt.decode(token, options={"verify_signature": False})

        assert set(claims) == {"typ", "sid", "iat", "iss"}

    def test_wrong_secret(self):
        token = encode_session_token("sid-123", SECRET)

        with pytest.raises(CookieTokenError):
            decode_session_token(token, "another-secret-0123456789abcdef-xyz")

    @pytest.mark.parametrize("token", [None, "", "not-a-jwt", "a.b.c"])
    def test_malformed(self, token):
        with pytest.raises(CookieTokenError):
            decode_session_token(token, SECRET)

    def test_token_types_are_not_interchangeable(self):
        pending = encode_pending_token("state-1", SECRET, timedelta(minutes=5))
        session = encode_session_token("sid-123", SECRET)

        with pytest.raises(CookieTokenError, match="Expected session token"):
            decode_session_token(pending, SECRET)
        with pytest.raises(CookieTokenError, match="Expected pending token"):
            decode_pending_token(session, SECRET)

    def test_pending_token_round_trip(self):
        token = encode_pending_token("state-1", SECRET, timedelta(minutes=5))
        assert decode_pending_token(token, SECRET) == "state-1"

    def test_expired_pending_token(self):
        token = encode_pending_token("state-1", SECRET, timedelta(seconds=-1))

        with pytest.raises(CookieTokenError, match="expired"):
            decode_pending_token(token, SECRET)

    def test_foreign_issuer_rejected(self):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"typ": "session", "sid": "sid-123", "iat": now, "iss": "someone-else"},
            SECRET,
            algorithm="HS256",
        )

        with pytest.raises(CookieTokenError):
            decode_session_token(token, SECRET)
