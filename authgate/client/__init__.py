"""
Client Package

Client-side counterpart of the gate: checks the current session once on
load and renders loading / anonymous / authenticated / error views.
"""

from .reflector import SessionReflector
from .views import SessionView, ViewState, render_view

__all__ = [
    "SessionReflector",
    "SessionView",
    "ViewState",
    "render_view",
]
