"""
Identity provider adapters.

The gate depends on one capability only: turn an authorization code into an
Identity, or fail with UpstreamAuthError. ``GoogleIdentityProvider`` does this
against Google's OAuth2 token endpoint and verifies the returned ID token
with the provider's JWKS:

1. POST the code to the token endpoint (client secret stays server-side)
2. Fetch and cache the JWKS, pick the key matching the token's kid
3. Verify signature, audience, issuer, expiry and nonce
4. Map the claims to an Identity
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx
from jose import JWTError, jwk, jwt
from pydantic import ValidationError

from authgate.config import Settings
from authgate.exceptions import UpstreamAuthError
from authgate.models import Identity

logger = logging.getLogger(__name__)

SCOPES = "openid profile email"


class IdentityProvider(ABC):
    """Capability boundary between the gate and a concrete provider."""

    @abstractmethod
    def authorization_url(self, state: str, nonce: str) -> str:
        """Consent page URL embedding the callback address, scopes and state."""

    @abstractmethod
    async def exchange_code(self, code: str, nonce: Optional[str] = None) -> Identity:
        """
        Exchange an authorization code for the user's identity.

        Raises:
            UpstreamAuthError: On any provider, network or token failure
        """

    async def aclose(self) -> None:
        return None


# =============================================================================
# Claims Mapping
# =============================================================================

def extract_email_from_claims(claims: Dict[str, Any]) -> Optional[str]:
    """
    Extract a verified email address from ID token claims.

    Google marks unverified addresses with email_verified=false; those are
    dropped rather than trusted.
    """
    email = claims.get("email")
    if not email or "@" not in email:
        return None
    if claims.get("email_verified") is False:
        return None
    return email.lower().strip()


def get_user_display_name(claims: Dict[str, Any]) -> str:
    """
    Extract user's display name from claims.

    Returns:
        Display name, the email local part, or "User" as a last resort
    """
    name = claims.get("name") or claims.get("given_name")
    if name:
        return name

    email = extract_email_from_claims(claims)
    if email:
        return email.split("@")[0].title()

    return "User"


def identity_from_claims(claims: Dict[str, Any]) -> Identity:
    """
    Build the Identity snapshot from verified claims.

    Raises:
        UpstreamAuthError: If the subject is missing or the claims are malformed
    """
    subject = claims.get("sub")
    if not subject:
        raise UpstreamAuthError("ID token has no subject")

    try:
        return Identity(
            id=str(subject),
            display_name=get_user_display_name(claims),
            email=extract_email_from_claims(claims),
            avatar_url=claims.get("picture") or None,
        )
    except ValidationError as e:
        raise UpstreamAuthError(f"Unusable identity claims: {e.error_count()} invalid field(s)") from None


# =============================================================================
# Google
# =============================================================================

class GoogleIdentityProvider(IdentityProvider):
    """
    Google OpenID Connect adapter.

    Args:
        settings: Application settings (client credentials, endpoints, timeouts)
        transport: Optional httpx transport, used by tests to stub Google
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._settings = settings
        self._client = httpx.AsyncClient(
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
            transport=transport,
        )
        self._jwks_cache: Optional[Dict[str, Any]] = None
        self._jwks_cache_time: float = 0.0

    def authorization_url(self, state: str, nonce: str) -> str:
        params = {
            "client_id": self._settings.GOOGLE_CLIENT_ID,
            "response_type": "code",
            "redirect_uri": self._settings.callback_url,
            "scope": SCOPES,
            "state": state,
            "nonce": nonce,
            "prompt": "select_account",
        }
        return str(httpx.URL(self._settings.AUTHORIZATION_ENDPOINT, params=params))

    async def exchange_code(self, code: str, nonce: Optional[str] = None) -> Identity:
        try:
            token_data = await self._exchange_code_for_tokens(code)
            claims = await self.verify_id_token(token_data["id_token"])
        except httpx.TimeoutException:
            raise UpstreamAuthError("Timed out talking to the identity provider") from None
        except httpx.HTTPError as e:
            raise UpstreamAuthError(f"Unable to communicate with identity provider: {e}") from None
        except JWTError as e:
            raise UpstreamAuthError(f"ID token verification failed: {e}") from None

        if nonce and claims.get("nonce") != nonce:
            raise UpstreamAuthError("Nonce mismatch in ID token")

        return identity_from_claims(claims)

    async def _exchange_code_for_tokens(self, code: str) -> Dict[str, Any]:
        """
        Exchange authorization code for access and ID tokens.

        Returns:
            Token response dictionary containing id_token, access_token, etc.

        Raises:
            UpstreamAuthError: If the provider rejects the code
            httpx.HTTPError: If the provider is unreachable
        """
        payload = {
            "client_id": self._settings.GOOGLE_CLIENT_ID,
            "client_secret": self._settings.GOOGLE_CLIENT_SECRET.get_secret_value(),
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self._settings.callback_url,
        }

        response = await self._client.post(
            self._settings.TOKEN_ENDPOINT,
            data=payload,
            headers={"Accept": "application/json"},
        )

        if not response.is_success:
            error_data = {}
            if response.headers.get("content-type", "").startswith("application/json"):
                error_data = response.json()
            error_msg = error_data.get("error") or f"HTTP {response.status_code}"
            raise UpstreamAuthError(f"Token exchange failed: {error_msg}")

        token_data = response.json()
        if "id_token" not in token_data:
            raise UpstreamAuthError("Token response missing id_token")

        return token_data

    # =========================================================================
    # JWKS
    # =========================================================================

    async def fetch_jwks(self, force_refresh: bool = False) -> Dict[str, Any]:
        """
        Fetch the provider JWKS, cached for JWKS_CACHE_SECONDS.

        Raises:
            httpx.HTTPError: If the JWKS endpoint is unreachable
            UpstreamAuthError: If the document has no keys
        """
        now = time.time()
        if (
            not force_refresh
            and self._jwks_cache
            and (now - self._jwks_cache_time) < self._settings.JWKS_CACHE_SECONDS
        ):
            return self._jwks_cache

        response = await self._client.get(self._settings.JWKS_URI)
        response.raise_for_status()

        jwks_data = response.json()
        if "keys" not in jwks_data:
            raise UpstreamAuthError("Invalid JWKS response: missing 'keys' field")

        self._jwks_cache = jwks_data
        self._jwks_cache_time = now
        logger.debug("Refreshed provider JWKS", extra={"key_count": len(jwks_data["keys"])})
        return jwks_data

    async def verify_id_token(self, id_token: str) -> Dict[str, Any]:
        """
        Verify and decode an ID token.

        Retries the key lookup once with a fresh JWKS in case keys rotated.

        Raises:
            JWTError: If the token is invalid, expired, or signed by an unknown key
        """
        jwks = await self.fetch_jwks()
        signing_key = get_signing_key(id_token, jwks)
        if not signing_key:
            jwks = await self.fetch_jwks(force_refresh=True)
            signing_key = get_signing_key(id_token, jwks)
            if not signing_key:
                raise JWTError("Unable to find matching signing key in JWKS")

        try:
            public_key = jwk.construct(signing_key, algorithm="RS256")
        except Exception as e:
            raise JWTError(f"Failed to construct public key from JWK: {e}")

        return jwt.decode(
            id_token,
            public_key.to_pem().decode("utf-8"),
            algorithms=["RS256"],
            audience=self._settings.GOOGLE_CLIENT_ID,
            issuer=self._settings.id_token_issuers_list,
            options={
                "verify_at_hash": False,
                "leeway": 10,  # clock skew tolerance in seconds
            },
        )

    async def aclose(self) -> None:
        await self._client.aclose()


def get_signing_key(token: str, jwks: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Return the JWKS entry whose kid matches the token header, or None.

    Raises:
        JWTError: If the token header is malformed or has no kid
    """
    unverified_header = jwt.get_unverified_header(token)
    kid = unverified_header.get("kid")
    if not kid:
        raise JWTError("Token header missing 'kid' (Key ID)")

    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return key

    return None
