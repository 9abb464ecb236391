"""
Daybook Backend: Authentication Domain Models
==============================================

What:  The signed-in user (Identity), the token bundle the auth backend
       hands out (AuthSession), and the session-change notifications the
       backend client publishes (AuthEvent / AuthStateChange).
Who:   Built by the backend client, consumed by the Session Store.
"""

import time
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class Identity(BaseModel):
    """
    Minimal profile of the authenticated user, held in memory only.

    Built from the backend's user object: `id`, `email` (empty when the
    provider did not return one) and `user_metadata.name`, which signup
    stores as the display name.
    """

    id: str
    email: str = ""
    display_name: Optional[str] = None

    @classmethod
    def from_user(cls, user: Dict[str, Any]) -> "Identity":
        metadata = user.get("user_metadata") or {}
        return cls(
            id=str(user["id"]),
            email=user.get("email") or "",
            display_name=metadata.get("name"),
        )


class AuthSession(BaseModel):
    """
    Access/refresh token pair plus the user it belongs to.

    `expires_at` is a Unix timestamp in seconds. The auth backend sends
    either `expires_at` directly or only `expires_in`; from_payload()
    normalizes both forms.
    """

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_at: Optional[int] = None
    user: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "AuthSession":
        expires_at = payload.get("expires_at")
        if expires_at is None and payload.get("expires_in") is not None:
            expires_at = int(time.time()) + int(payload["expires_in"])
        return cls(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token") or "",
            token_type=payload.get("token_type") or "bearer",
            expires_at=expires_at,
            user=payload.get("user") or {},
        )

    def is_expired(self, leeway: int = 10) -> bool:
        """True when the access token expires within `leeway` seconds."""
        if self.expires_at is None:
            return False
        return self.expires_at - leeway <= time.time()

    @property
    def identity(self) -> Optional[Identity]:
        if not self.user.get("id"):
            return None
        return Identity.from_user(self.user)


class AuthEvent(str, Enum):
    """Kinds of session change published by the backend client."""

    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"


class AuthStateChange(BaseModel):
    """One notification on the session-change feed. `session` is None after sign-out."""

    event: AuthEvent
    session: Optional[AuthSession] = None
