"""
Authentication routes.

This module exposes the gate over HTTP:

    GET  /auth/start     -> 302 to the provider consent page, sets login cookie
    GET  /auth/callback  -> 302 to the frontend (or frontend ?error=auth)
    GET  /whoami         -> 200 {"user": ...} or 401
    GET  /me             -> alias of /whoami
    POST /logout         -> 200 {"ok": true} or 500 on store failure
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query, Request, status
from fastapi.responses import JSONResponse, RedirectResponse, Response

from authgate.auth.gate import AuthGate
from authgate.exceptions import CsrfMismatch, SessionStoreError, UpstreamAuthError
from authgate.models import ErrorResponse, LogoutResponse, WhoAmIResponse

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "authgate_session"
PENDING_COOKIE_NAME = "authgate_login"
PENDING_COOKIE_PATH = "/auth"


# =============================================================================
# Router Setup
# =============================================================================

auth_router = APIRouter(prefix="/auth", tags=["authentication"])

session_router = APIRouter(tags=["session"])


def get_gate(request: Request) -> AuthGate:
    return request.app.state.gate


# =============================================================================
# Cookie Helpers
# =============================================================================

def _cookie_secure(request: Request, gate: AuthGate) -> bool:
    """Secure flag: explicit setting wins, otherwise an https BACKEND_ORIGIN or request."""
    if gate.settings.COOKIE_SECURE is not None:
        return gate.settings.COOKIE_SECURE
    return gate.settings.BACKEND_ORIGIN.startswith("https://") or request.url.scheme == "https"


def _set_session_cookie(response: Response, request: Request, gate: AuthGate, value: str) -> None:
    response.set_cookie(
        SESSION_COOKIE_NAME,
        value,
        max_age=gate.settings.SESSION_ABSOLUTE_TIMEOUT_MINUTES * 60,
        path="/",
        domain=gate.settings.COOKIE_DOMAIN,
        secure=_cookie_secure(request, gate),
        httponly=True,
        samesite="lax",
    )


def _clear_session_cookie(response: Response, request: Request, gate: AuthGate) -> None:
    response.delete_cookie(
        SESSION_COOKIE_NAME,
        path="/",
        domain=gate.settings.COOKIE_DOMAIN,
        secure=_cookie_secure(request, gate),
        httponly=True,
        samesite="lax",
    )


def _clear_pending_cookie(response: Response, request: Request, gate: AuthGate) -> None:
    response.delete_cookie(
        PENDING_COOKIE_NAME,
        path=PENDING_COOKIE_PATH,
        domain=gate.settings.COOKIE_DOMAIN,
        secure=_cookie_secure(request, gate),
        httponly=True,
        samesite="lax",
    )


def _not_authenticated() -> JSONResponse:
    body = ErrorResponse(error="not_authenticated", message="Not logged in")
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content=body.model_dump(exclude_none=True),
    )


def _store_failure(message: str) -> JSONResponse:
    body = ErrorResponse(error="session_store_error", message=message)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=body.model_dump(exclude_none=True),
    )


# =============================================================================
# Login
# =============================================================================

@auth_router.get("/start", response_class=RedirectResponse)
async def start_login(request: Request):
    """
    Redirect the browser to the provider consent page.

    A signed, httpOnly login cookie binds the generated state to this
    browser for PENDING_LOGIN_TTL_SECONDS.
    """
    gate = get_gate(request)
    login = await gate.start_login()

    response = RedirectResponse(url=login.authorization_url, status_code=status.HTTP_302_FOUND)
    response.set_cookie(
        PENDING_COOKIE_NAME,
        login.pending_cookie,
        max_age=gate.settings.PENDING_LOGIN_TTL_SECONDS,
        path=PENDING_COOKIE_PATH,
        domain=gate.settings.COOKIE_DOMAIN,
        secure=_cookie_secure(request, gate),
        httponly=True,
        samesite="lax",
    )
    return response


# =============================================================================
# Callback
# =============================================================================

@auth_router.get("/callback", response_class=RedirectResponse)
async def callback(
    request: Request,
    code: Optional[str] = Query(None, description="Authorization code from the provider"),
    state: Optional[str] = Query(None, description="State parameter for CSRF protection"),
    error: Optional[str] = Query(None, description="Error code if the user or provider refused"),
):
    """
    Handle the provider redirect.

    Success redirects to the frontend root with a new session cookie. Any
    failure redirects to ``FRONTEND_ORIGIN/?error=auth`` without detail; the
    reason only goes to the logs.
    """
    gate = get_gate(request)
    settings = gate.settings

    try:
        result = await gate.handle_callback(
            code=code,
            returned_state=state,
            pending_cookie=request.cookies.get(PENDING_COOKIE_NAME),
            current_session_cookie=request.cookies.get(SESSION_COOKIE_NAME),
            provider_error=error,
        )
    except (CsrfMismatch, UpstreamAuthError) as e:
        logger.info(
            "Login failed",
            extra={"reason": type(e).__name__, "path": request.url.path}
        )
        response = RedirectResponse(url=settings.frontend_error_url, status_code=status.HTTP_302_FOUND)
        _clear_pending_cookie(response, request, gate)
        return response
    except SessionStoreError:
        logger.error("Login failed: session could not be stored", exc_info=True)
        response = RedirectResponse(url=settings.frontend_error_url, status_code=status.HTTP_302_FOUND)
        _clear_pending_cookie(response, request, gate)
        return response

    response = RedirectResponse(url=settings.frontend_home_url, status_code=status.HTTP_302_FOUND)
    _clear_pending_cookie(response, request, gate)
    _set_session_cookie(response, request, gate, result.session_cookie)
    return response


# =============================================================================
# Session Endpoints
# =============================================================================

@session_router.get("/whoami")
async def whoami(request: Request):
    """
    Return the identity bound to the session cookie.

    A 401 here is the normal answer for anonymous visitors. A cookie that no
    longer points at a live session is cleared.
    """
    gate = get_gate(request)
    session_cookie = request.cookies.get(SESSION_COOKIE_NAME)

    try:
        identity = await gate.whoami(session_cookie)
    except SessionStoreError:
        logger.error("Session lookup failed", exc_info=True)
        return _store_failure("Failed to read session")

    if identity is None:
        response = _not_authenticated()
        if session_cookie:
            _clear_session_cookie(response, request, gate)
        return response

    return WhoAmIResponse(user=identity.to_public()).model_dump()


session_router.add_api_route("/me", whoami, methods=["GET"], include_in_schema=False)


@session_router.post("/logout")
async def logout(request: Request):
    """
    Destroy the session and clear its cookie.

    On store failure the cookie is kept so the browser still matches the
    server, which may still hold the session.
    """
    gate = get_gate(request)

    try:
        await gate.logout(request.cookies.get(SESSION_COOKIE_NAME))
    except SessionStoreError:
        return _store_failure("Failed to destroy session")

    response = JSONResponse(content=LogoutResponse(ok=True).model_dump())
    _clear_session_cookie(response, request, gate)
    return response


__all__ = [
    "auth_router",
    "session_router",
    "get_gate",
    "SESSION_COOKIE_NAME",
    "PENDING_COOKIE_NAME",
]
