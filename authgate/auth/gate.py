"""
Authentication gate.

Per-browser state machine driven by four operations:

    Anonymous --start_login--> PendingCallback
    PendingCallback --handle_callback ok--> Authenticated
    PendingCallback --csrf mismatch / upstream failure--> Anonymous
    Authenticated --logout / expiry--> Anonymous

The gate holds no per-browser state itself: pending attempts live in the
pending store, sessions in the session store, and the browser carries signed
cookies pointing at them. HTTP concerns (status codes, cookie flags) belong
to the routes.
"""

import asyncio
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from authgate.config import Settings
from authgate.exceptions import (
    ConfigurationError,
    CsrfMismatch,
    SessionStoreError,
    UpstreamAuthError,
)
from authgate.models import Identity, Session
from authgate.sessions.cookies import (
    CookieTokenError,
    decode_pending_token,
    decode_session_token,
    encode_pending_token,
    encode_session_token,
)
from authgate.sessions.pending import PendingLoginStore
from authgate.sessions.store import SessionStore
from authgate.auth.provider import IdentityProvider

logger = logging.getLogger(__name__)

STATE_BYTES = 32


@dataclass(frozen=True)
class LoginStart:
    """Result of start_login: where to send the browser and what to remember."""
    authorization_url: str
    pending_cookie: str


@dataclass(frozen=True)
class LoginResult:
    """Result of a successful callback."""
    session: Session
    session_cookie: str


class AuthGate:
    """
    Orchestrates login, callback, who-am-I and logout.

    Args:
        settings: Application settings
        session_store: Owner of session lifetime
        pending_store: Owner of pending login attempts
        provider: Identity provider adapter
    """

    def __init__(
        self,
        settings: Settings,
        session_store: SessionStore,
        pending_store: PendingLoginStore,
        provider: IdentityProvider,
    ):
        self.settings = settings
        self.session_store = session_store
        self.pending_store = pending_store
        self.provider = provider

    @property
    def _secret(self) -> str:
        return self.settings.SESSION_SECRET.get_secret_value()

    @property
    def pending_ttl(self) -> timedelta:
        return timedelta(seconds=self.settings.PENDING_LOGIN_TTL_SECONDS)

    # =========================================================================
    # Start Login
    # =========================================================================

    async def start_login(self) -> LoginStart:
        """
        Begin a login attempt.

        Raises:
            ConfigurationError: If the system entropy source is unavailable
        """
        try:
            state = secrets.token_urlsafe(STATE_BYTES)
            nonce = secrets.token_urlsafe(STATE_BYTES)
        except (OSError, NotImplementedError) as e:
            logger.critical("Random token generation failed", exc_info=True)
            raise ConfigurationError("Entropy source unavailable") from e

        await self.pending_store.issue(state, nonce)

        logger.info("Login started", extra={"pending_ttl_seconds": self.settings.PENDING_LOGIN_TTL_SECONDS})
        return LoginStart(
            authorization_url=self.provider.authorization_url(state, nonce),
            pending_cookie=encode_pending_token(state, self._secret, self.pending_ttl),
        )

    # =========================================================================
    # Callback
    # =========================================================================

    async def handle_callback(
        self,
        code: Optional[str],
        returned_state: Optional[str],
        pending_cookie: Optional[str],
        current_session_cookie: Optional[str] = None,
        provider_error: Optional[str] = None,
    ) -> LoginResult:
        """
        Finish a login attempt.

        The attempt bound to the pending cookie is consumed whatever happens.

        Raises:
            CsrfMismatch: State missing, forged, replayed or expired
            UpstreamAuthError: Provider denied, failed or timed out
            SessionStoreError: The new session could not be stored
        """
        try:
            expected_state = decode_pending_token(pending_cookie, self._secret)
        except CookieTokenError as e:
            logger.warning(f"Callback rejected: {e}")
            raise CsrfMismatch("No valid pending login for this browser") from None

        attempt = await self.pending_store.consume(expected_state)

        if not returned_state or not hmac.compare_digest(
            returned_state.encode("utf-8"), expected_state.encode("utf-8")
        ):
            logger.warning("Callback rejected: state mismatch")
            raise CsrfMismatch("Returned state does not match the pending login")

        if attempt is None:
            logger.warning("Callback rejected: pending login already used or expired")
            raise CsrfMismatch("Pending login already used or expired")

        if provider_error:
            logger.info("Provider reported an error", extra={"provider_error": provider_error})
            raise UpstreamAuthError(f"Provider returned error: {provider_error}")

        if not code:
            raise UpstreamAuthError("Callback is missing the authorization code")

        identity = await self._exchange(code, attempt.nonce)

        # Re-login replaces any session the browser already had
        previous_id = self._session_id_from_cookie(current_session_cookie)
        if previous_id:
            await self._destroy(previous_id)

        try:
            session = await self.session_store.create(identity)
        except SessionStoreError:
            raise
        except Exception as e:
            raise SessionStoreError(f"Failed to create session: {e}") from e

        logger.info("Login completed", extra={"user_id": identity.id})
        return LoginResult(
            session=session,
            session_cookie=encode_session_token(session.session_id, self._secret),
        )

    async def _exchange(self, code: str, nonce: str) -> Identity:
        """Run the provider exchange under the configured time bound."""
        try:
            return await asyncio.wait_for(
                self.provider.exchange_code(code, nonce=nonce),
                timeout=self.settings.PROVIDER_TIMEOUT_SECONDS,
            )
        except UpstreamAuthError as e:
            logger.warning(f"Code exchange failed: {e}")
            raise
        except asyncio.TimeoutError:
            logger.warning("Code exchange timed out")
            raise UpstreamAuthError("Code exchange timed out") from None
        except Exception as e:
            logger.error(f"Unexpected error during code exchange: {e}", exc_info=True)
            raise UpstreamAuthError("Code exchange failed") from e

    # =========================================================================
    # Who Am I / Logout
    # =========================================================================

    def _session_id_from_cookie(self, session_cookie: Optional[str]) -> Optional[str]:
        if not session_cookie:
            return None
        try:
            return decode_session_token(session_cookie, self._secret)
        except CookieTokenError as e:
            logger.debug(f"Ignoring session cookie: {e}")
            return None

    async def whoami(self, session_cookie: Optional[str]) -> Optional[Identity]:
        """
        Identity bound to the browser's session, or None if not authenticated.

        Raises:
            SessionStoreError: If the store cannot be read
        """
        session_id = self._session_id_from_cookie(session_cookie)
        if not session_id:
            return None

        try:
            session = await self.session_store.get(session_id)
        except SessionStoreError:
            raise
        except Exception as e:
            raise SessionStoreError(f"Failed to read session: {e}") from e

        if session is None:
            logger.debug("Session cookie points at no live session")
            return None
        return session.identity

    async def logout(self, session_cookie: Optional[str]) -> None:
        """
        Destroy the browser's session. Idempotent.

        Raises:
            SessionStoreError: If the store fails; the caller must keep the cookie
        """
        session_id = self._session_id_from_cookie(session_cookie)
        if session_id:
            await self._destroy(session_id)

    async def _destroy(self, session_id: str) -> None:
        try:
            await self.session_store.destroy(session_id)
        except SessionStoreError:
            logger.error("Session store failed to destroy a session", exc_info=True)
            raise
        except Exception as e:
            logger.error("Session store failed to destroy a session", exc_info=True)
            raise SessionStoreError(f"Failed to destroy session: {e}") from e

    # =========================================================================
    # Housekeeping
    # =========================================================================

    async def purge_expired(self) -> int:
        """Purge expired sessions and pending logins; returns the total removed."""
        removed = await self.session_store.purge_expired()
        removed += await self.pending_store.purge_expired()
        return removed

    async def aclose(self) -> None:
        await self.provider.aclose()
