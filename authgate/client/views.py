"""
Render states of the client session reflector and their HTML.
"""

from dataclasses import dataclass
from enum import Enum
from html import escape
from typing import Optional

from authgate.models import Identity


class ViewState(str, Enum):
    LOADING = "loading"
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"
    ERROR = "error"


@dataclass(frozen=True)
class SessionView:
    """What the page should show."""
    state: ViewState
    identity: Optional[Identity] = None
    error: Optional[str] = None
    login_failed: bool = False


_STYLE = """
        * { margin: 0; padding: 0; box-sizing: border-box; }
        body {
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Helvetica, Arial, sans-serif;
            background: #f3f4f6;
            min-height: 100vh;
        }
        .center {
            min-height: 100vh;
            display: flex;
            flex-direction: column;
            align-items: center;
            justify-content: center;
            gap: 12px;
            text-align: center;
        }
        .avatar { width: 96px; height: 96px; border-radius: 50%; }
        h2 { color: #1f2937; font-size: 24px; }
        .email { color: #6b7280; font-size: 14px; }
        .notice { color: #b91c1c; font-size: 14px; }
        .login-btn, .logout-btn {
            display: inline-block;
            background: #667eea;
            color: white;
            padding: 14px 32px;
            border: none;
            border-radius: 8px;
            text-decoration: none;
            font-weight: 600;
            font-size: 16px;
            cursor: pointer;
        }
        .logout-btn { background: #ef4444; }
"""


# On failure the profile stays and the notice shows
_LOGOUT_SCRIPT = """
        document.querySelector(".logout-btn").addEventListener("click", async (event) => {
            const notice = document.getElementById("logout-error");
            try {
                const res = await fetch(event.target.dataset.logoutUrl, {
                    method: "POST",
                    credentials: "include",
                });
                if (res.ok) {
                    window.location.reload();
                    return;
                }
            } catch (e) {}
            notice.hidden = false;
        });
"""


def _page(body: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Google OAuth demo</title>
    <style>{_STYLE}    </style>
</head>
<body>
    <div class="root">
{body}
    </div>
</body>
</html>
"""


def render_view(view: SessionView, login_url: str, logout_url: str = "/logout") -> str:
    """
    Render a SessionView as a standalone HTML page.

    Args:
        view: Current reflector view
        login_url: Full-page navigation target of the login button
        logout_url: Gate logout endpoint, POSTed with credentials by the logout button

    Returns:
        HTML document
    """
    if view.state is ViewState.LOADING:
        return _page('        <div class="center">Loading...</div>')

    if view.state is ViewState.ERROR:
        return _page(f'        <div class="center">Error: {escape(view.error or "Unknown error")}</div>')

    if view.state is ViewState.ANONYMOUS:
        notice = '<p class="notice">Login failed. Please try again.</p>' if view.login_failed else ""
        return _page(f"""        <div class="center">
            {notice}
            <a class="login-btn" href="{escape(login_url)}">Login with Google</a>
        </div>""")

    identity = view.identity
    avatar = ""
    if identity.avatar_url:
        avatar = f'<img src="{escape(identity.avatar_url)}" alt="avatar" class="avatar">'
    email = f'<p class="email">{escape(identity.email)}</p>' if identity.email else ""
    error = f'<p class="notice">{escape(view.error)}</p>' if view.error else ""

    return _page(f"""        <div class="center">
            {avatar}
            <h2>Welcome, {escape(identity.display_name)}</h2>
            {email}
            {error}
            <p class="notice" id="logout-error" hidden>Failed to logout</p>
            <button type="button" class="logout-btn" data-logout-url="{escape(logout_url)}">Logout</button>
        </div>
        <script>{_LOGOUT_SCRIPT}        </script>""")
