"""
Daybook Backend: Authentication Request/Response Schemas
=========================================================

What:  API contract for sign-in, sign-up, sign-out and password recovery.
How:   Input rules that belong to the form layer (name required, password
       length, matching confirmation) are enforced here so the services
       receive already-checked values.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from daybook.models.session import Identity
from daybook.services.session_store import SignupOutcome

MIN_PASSWORD_LENGTH = 6


# ══════════════════════════════════════════════════════════════════════════
# Requests
# ══════════════════════════════════════════════════════════════════════════


class LoginRequest(BaseModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class SignupRequest(BaseModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)
    name: str = Field(description="Display name stored as profile metadata")

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Please enter your name to create an account.")
        return v.strip()


class ForgotPasswordRequest(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def email_required(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Please enter your email address.")
        return v.strip()


class RecoverySessionRequest(BaseModel):
    fragment: str = Field(
        default="",
        description="URL fragment of the reset link, e.g. '#/reset-password#access_token=...&refresh_token=...'",
    )


class PasswordUpdateRequest(BaseModel):
    password: str
    confirm_password: str

    @field_validator("password")
    @classmethod
    def long_enough(cls, v: str) -> str:
        if len(v) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")
        return v

    @model_validator(mode="after")
    def passwords_match(self) -> "PasswordUpdateRequest":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match.")
        return self


# ══════════════════════════════════════════════════════════════════════════
# Responses
# ══════════════════════════════════════════════════════════════════════════


class SessionResponse(BaseModel):
    user: Optional[Identity] = Field(default=None, description="Signed-in user, null when signed out")


class LoginResponse(BaseModel):
    ok: bool
    user: Optional[Identity] = None
    error: Optional[str] = None


class SignupResponse(BaseModel):
    ok: bool
    needs_email_confirm: bool
    outcome: SignupOutcome
    error: Optional[str] = None
    user: Optional[Identity] = None


class RecoverySessionResponse(BaseModel):
    verified: bool = Field(description="True when the link's tokens were accepted")
    fragment: str = Field(description="Fragment to display with the tokens removed")
