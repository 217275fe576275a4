"""
Exception hierarchy for the authentication gate.

Routes translate these into redirects or JSON errors; messages are for logs
only and must never carry secrets or tokens.
"""


class AuthGateError(Exception):
    """Base exception for authentication gate errors"""
    pass


class ConfigurationError(AuthGateError):
    """Provider credentials or secrets are missing, or randomness is unavailable."""
    pass


class CsrfMismatch(AuthGateError):
    """Callback state does not match a live login attempt from this browser."""
    pass


class UpstreamAuthError(AuthGateError):
    """The identity provider rejected the code, timed out, or returned bad tokens."""
    pass


class SessionStoreError(AuthGateError):
    """The session store could not complete an operation."""
    pass


__all__ = [
    "AuthGateError",
    "ConfigurationError",
    "CsrfMismatch",
    "UpstreamAuthError",
    "SessionStoreError",
]
