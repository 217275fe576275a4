"""
Client Session Reflector
========================

Client-side view of the authentication gate. On load it asks the backend
who is signed in, exactly once, and settles in one of the render states:

    LOADING        -> check in flight
    ANONYMOUS      -> show "Login with Google"
    AUTHENTICATED  -> show profile and "Logout"
    ERROR          -> the check itself failed; NOT the same as anonymous

Login is a full navigation to the backend (the consent page cannot live
inside this page); logout is an API call.
"""

import logging
import webbrowser
from dataclasses import replace
from typing import Any, Callable, Optional
from urllib.parse import parse_qs, urlsplit

import httpx
from pydantic import ValidationError

from authgate.client.views import SessionView, ViewState, render_view
from authgate.models import Identity

logger = logging.getLogger(__name__)


class SessionReflector:
    """
    Reflects the backend session into a render state.

    Args:
        backend_origin: Origin of the authentication gate
        client: Optional preconfigured httpx client (keeps the cookie jar)
        navigate: Called with a URL to perform a full-page navigation
        landing_url: URL the page was loaded from; ``?error=auth`` marks a failed login
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        backend_origin: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        navigate: Callable[[str], Any] = webbrowser.open,
        landing_url: Optional[str] = None,
        timeout: float = 10.0,
    ):
        self.backend_origin = backend_origin.rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self.backend_origin, timeout=timeout)
        self._navigate = navigate
        self._loaded = False
        self._view = SessionView(
            state=ViewState.LOADING,
            login_failed=_login_failed(landing_url),
        )

    @property
    def view(self) -> SessionView:
        return self._view

    def _url(self, path: str) -> str:
        return f"{self.backend_origin}{path}"

    async def load(self) -> SessionView:
        """
        Ask the backend for the current identity. Only the first call does a request.
        """
        if self._loaded:
            return self._view
        self._loaded = True

        try:
            response = await self._client.get(self._url("/whoami"))
        except httpx.HTTPError as e:
            logger.warning(f"Session check failed: {e}")
            self._view = replace(self._view, state=ViewState.ERROR, error="Failed to contact server")
            return self._view

        if response.status_code == 200:
            try:
                identity = Identity.model_validate(response.json()["user"])
            except (KeyError, TypeError, ValueError, ValidationError):
                self._view = replace(self._view, state=ViewState.ERROR, error="Unexpected response from server")
                return self._view
            self._view = replace(self._view, state=ViewState.AUTHENTICATED, identity=identity, error=None)
        elif response.status_code == 401:
            self._view = replace(self._view, state=ViewState.ANONYMOUS, identity=None, error=None)
        else:
            logger.warning(f"Session check returned HTTP {response.status_code}")
            self._view = replace(self._view, state=ViewState.ERROR, error="Failed to contact server")

        return self._view

    def start_login(self) -> str:
        """Navigate the whole page to the gate's login start address."""
        url = self._url("/auth/start")
        self._navigate(url)
        return url

    async def logout(self) -> SessionView:
        """
        End the session.

        On failure the view stays AUTHENTICATED with the error attached, since
        the server may still hold the session.
        """
        try:
            response = await self._client.post(self._url("/logout"))
        except httpx.HTTPError as e:
            logger.warning(f"Logout request failed: {e}")
            self._view = replace(self._view, error="Failed to logout")
            return self._view

        if response.is_success:
            self._view = SessionView(state=ViewState.ANONYMOUS)
        else:
            self._view = replace(self._view, error="Failed to logout")
        return self._view

    def render(self) -> str:
        return render_view(
            self._view,
            login_url=self._url("/auth/start"),
            logout_url=self._url("/logout"),
        )

    async def aclose(self) -> None:
        await self._client.aclose()


def _login_failed(landing_url: Optional[str]) -> bool:
    if not landing_url:
        return False
    query = parse_qs(urlsplit(landing_url).query)
    return "auth" in query.get("error", [])
