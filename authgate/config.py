"""
Configuration module for the authentication gate.

This module uses Pydantic Settings to load and validate environment variables
for the Google OAuth client, session cookies, expiry policy and CORS.

Environment variables are loaded from .env file or system environment.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from authgate.exceptions import ConfigurationError


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Provider credentials and the session signing secret are required. Everything
    else has a development default.
    """

    # =========================================================================
    # Google OAuth Client
    # =========================================================================

    GOOGLE_CLIENT_ID: str = Field(
        ...,
        description="OAuth client ID from the Google Cloud console",
        min_length=1,
    )

    GOOGLE_CLIENT_SECRET: SecretStr = Field(
        ...,
        description="OAuth client secret (never sent to the browser)",
    )

    AUTHORIZATION_ENDPOINT: str = Field(
        default="https://accounts.google.com/o/oauth2/v2/auth",
        description="Provider consent endpoint",
    )

    TOKEN_ENDPOINT: str = Field(
        default="https://oauth2.googleapis.com/token",
        description="Provider token endpoint used for the code exchange",
    )

    JWKS_URI: str = Field(
        default="https://www.googleapis.com/oauth2/v3/certs",
        description="Provider JWKS document for ID token signatures",
    )

    ID_TOKEN_ISSUERS: str = Field(
        default="https://accounts.google.com,accounts.google.com",
        description="Comma-separated accepted values of the ID token 'iss' claim",
    )

    PROVIDER_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Upper bound for the whole code exchange",
        gt=0,
        le=60,
    )

    JWKS_CACHE_SECONDS: int = Field(
        default=3600,
        description="Time to cache provider JWKS keys in seconds",
        ge=60,
        le=86400,
    )

    # =========================================================================
    # Origins
    # =========================================================================

    BACKEND_ORIGIN: str = Field(
        default="http://localhost:5000",
        description="Public origin of this service, used to build the callback URL",
    )

    FRONTEND_ORIGIN: str = Field(
        default="http://localhost:3000",
        description="Frontend origin for CORS and post-login redirects",
    )

    ALLOWED_ORIGINS: Optional[str] = Field(
        None,
        description="Extra comma-separated CORS origins besides FRONTEND_ORIGIN",
    )

    # =========================================================================
    # Sessions
    # =========================================================================

    SESSION_SECRET: SecretStr = Field(
        ...,
        description="Secret for signing session and login cookies",
    )

    COOKIE_SECURE: Optional[bool] = Field(
        None,
        description="Force the Secure cookie flag; unset means 'when the request is https'",
    )

    COOKIE_DOMAIN: Optional[str] = Field(
        None,
        description="Cookie domain (leave empty for host-only cookies)",
    )

    SESSION_IDLE_TIMEOUT_MINUTES: int = Field(
        default=30,
        description="Session ends after this long without a request",
        ge=1,
        le=1440,
    )

    SESSION_ABSOLUTE_TIMEOUT_MINUTES: int = Field(
        default=480,
        description="Session ends this long after login regardless of activity",
        ge=5,
        le=10080,  # Max 7 days
    )

    PENDING_LOGIN_TTL_SECONDS: int = Field(
        default=300,
        description="How long a started login may wait for its callback",
        ge=30,
        le=3600,
    )

    SWEEP_INTERVAL_SECONDS: int = Field(
        default=60,
        description="Interval of the background purge of expired records",
        ge=1,
    )

    # =========================================================================
    # Server
    # =========================================================================

    HOST: str = Field(default="0.0.0.0", description="Host to bind the server")

    PORT: int = Field(default=5000, description="Port to bind the server", ge=1, le=65535)

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def callback_url(self) -> str:
        """Redirect URI registered with the provider."""
        return f"{self.BACKEND_ORIGIN.rstrip('/')}/auth/callback"

    @property
    def frontend_home_url(self) -> str:
        return f"{self.FRONTEND_ORIGIN.rstrip('/')}/"

    @property
    def frontend_error_url(self) -> str:
        return f"{self.frontend_home_url}?error=auth"

    @property
    def allowed_origins_list(self) -> List[str]:
        """
        FRONTEND_ORIGIN followed by any ALLOWED_ORIGINS entries, deduplicated.

        Returns:
            List of origin URLs without trailing slashes.
        """
        origins = [self.FRONTEND_ORIGIN.rstrip("/")]
        if self.ALLOWED_ORIGINS:
            for origin in self.ALLOWED_ORIGINS.split(","):
                origin = origin.strip().rstrip("/")
                if origin and origin not in origins:
                    origins.append(origin)
        return origins

    @property
    def id_token_issuers_list(self) -> List[str]:
        return [i.strip() for i in self.ID_TOKEN_ISSUERS.split(",") if i.strip()]

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("GOOGLE_CLIENT_SECRET")
    @classmethod
    def validate_client_secret(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value().strip():
            raise ValueError("GOOGLE_CLIENT_SECRET must not be empty")
        return v

    @field_validator("SESSION_SECRET")
    @classmethod
    def validate_session_secret(cls, v: SecretStr) -> SecretStr:
        """
        Require a signing secret long enough for HS256.

        Raises:
            ValueError: If the secret is shorter than 32 characters
        """
        if len(v.get_secret_value()) < 32:
            raise ValueError("SESSION_SECRET must be at least 32 characters")
        return v

    @field_validator("BACKEND_ORIGIN", "FRONTEND_ORIGIN")
    @classmethod
    def validate_origin(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Origin must start with http:// or https://, got: {v}")
        return v.rstrip("/")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}, got: {v}")
        return v.upper()


def load_settings(**overrides) -> Settings:
    """
    Build a Settings instance, converting validation failures to ConfigurationError.

    Only field names are reported; values may be secrets.

    Raises:
        ConfigurationError: If required variables are missing or invalid.
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise ConfigurationError(
            f"Invalid or missing configuration: {', '.join(fields)}"
        ) from None


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    Cached so settings are loaded once per process.

    Raises:
        ConfigurationError: If provider credentials or the session secret
                            are missing or invalid.
    """
    return load_settings()


def validate_configuration(settings: Settings) -> dict:
    """
    Inspect loaded settings and return a status report of non-fatal problems.

    Called during application startup; warnings are logged, never raised.

    Example:
        >>> report = validate_configuration(get_settings())
        >>> for warning in report["warnings"]:
        ...     print(warning)
    """
    warnings = []

    backend_is_https = settings.BACKEND_ORIGIN.startswith("https://")

    if settings.COOKIE_SECURE is False and backend_is_https:
        warnings.append("COOKIE_SECURE is false while BACKEND_ORIGIN is https")

    if settings.COOKIE_SECURE is None and not backend_is_https:
        warnings.append("BACKEND_ORIGIN is not https; session cookies are only Secure on https requests")

    if settings.SESSION_IDLE_TIMEOUT_MINUTES > settings.SESSION_ABSOLUTE_TIMEOUT_MINUTES:
        warnings.append(
            "SESSION_IDLE_TIMEOUT_MINUTES exceeds SESSION_ABSOLUTE_TIMEOUT_MINUTES; "
            "the absolute timeout always applies first"
        )

    if "localhost" in settings.FRONTEND_ORIGIN or "127.0.0.1" in settings.FRONTEND_ORIGIN:
        warnings.append("FRONTEND_ORIGIN points to localhost")

    return {
        "warnings": warnings,
        "callback_url": settings.callback_url,
        "allowed_origins": settings.allowed_origins_list,
        "session_idle_timeout_minutes": settings.SESSION_IDLE_TIMEOUT_MINUTES,
        "session_absolute_timeout_minutes": settings.SESSION_ABSOLUTE_TIMEOUT_MINUTES,
    }
