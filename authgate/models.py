"""
Data Models Module

This module defines Pydantic models for the identity snapshot, stored
sessions and pending logins, and the JSON bodies returned to clients.

Models are organized by functional area:
- Identity and session records
- Response bodies (who-am-I, logout, errors, health)
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Identity & Session Models
# ============================================================================

class Identity(BaseModel):
    """Public profile of the authenticated principal, captured at callback time."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., description="Provider subject identifier", min_length=1)
    display_name: str = Field(..., alias="displayName", description="User display name")
    email: Optional[EmailStr] = Field(None, description="User email address")
    avatar_url: Optional[str] = Field(None, alias="avatarUrl", description="Profile picture URL")

    def to_public(self) -> dict:
        """Client-facing JSON shape with camelCase keys."""
        return self.model_dump(by_alias=True, mode="json")


class Session(BaseModel):
    """Server-side record binding an opaque session id to an identity."""
    session_id: str = Field(..., description="Opaque, unguessable session identifier")
    identity: Identity = Field(..., description="Identity captured at login")
    created_at: datetime = Field(default_factory=utcnow, description="Session establishment time")
    last_seen_at: datetime = Field(default_factory=utcnow, description="Last successful read")


class PendingLogin(BaseModel):
    """Correlation record for a login redirect awaiting its callback."""
    model_config = ConfigDict(frozen=True)

    state: str = Field(..., description="Correlation token echoed by the provider")
    nonce: str = Field(..., description="OpenID nonce expected in the ID token")
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime = Field(..., description="After this the callback is refused")


# ============================================================================
# Response Models
# ============================================================================

class WhoAmIResponse(BaseModel):
    """Body of a successful /whoami."""
    user: dict = Field(..., description="Identity with camelCase keys")


class LogoutResponse(BaseModel):
    ok: bool = True


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    active_sessions: int = Field(..., description="Sessions currently held by the store")


class ErrorResponse(BaseModel):
    """Standardized error response model."""
    error: str = Field(..., description="Error type or code")
    message: str = Field(..., description="Human-readable error message")
    detail: Optional[str] = Field(None, description="Debug detail, only when LOG_LEVEL=DEBUG")
