"""
Daybook Backend: Password Reset Flow
=====================================

What:  Forgot-password email, recovery-link verification and password update.

Flow:
    1. request_reset(email)
       → auth backend emails a link to <app_url>/#/reset-password
    2. The link arrives with the session tokens in the URL fragment:
         #access_token=...&refresh_token=...                  (path routing)
         #/reset-password#access_token=...&refresh_token=...  (hash routing)
       establish_recovery_session(fragment) parses the pair from the segment
       after the LAST '#', adopts it as the session and returns the fragment
       with the tokens stripped (route kept) for the client to put back in
       its address bar.
    3. update_password(password) on the recovered session.
"""

import logging
from typing import Optional
from urllib.parse import parse_qsl

from pydantic import BaseModel

from daybook.config import settings
from daybook.exceptions import BackendError, DaybookError, ValidationError
from daybook.models.session import AuthEvent
from daybook.services.backend_client import BackendClient

logger = logging.getLogger(__name__)

RESET_EMAIL_FAILED_MESSAGE = "No email like that found in our app."
INVALID_LINK_MESSAGE = "Invalid or expired link. Please request a new password reset link."


class ResetTokens(BaseModel):
    access_token: str
    refresh_token: str


class RecoveryResult(BaseModel):
    """
    verified:  True when a token pair was found and adopted as the session.
               False for a direct visit (no tokens in the fragment).
    fragment:  The URL fragment to display, tokens removed.
    """

    verified: bool
    fragment: str


def fragment_params(fragment: str) -> dict:
    """Query-style parameters of the segment after the final '#'."""
    if "#" in fragment:
        segment = fragment[fragment.rindex("#") + 1:]
    else:
        segment = fragment
    return dict(parse_qsl(segment, keep_blank_values=True))


def parse_reset_fragment(fragment: str) -> Optional[ResetTokens]:
    """
    Extract the access/refresh token pair from a recovery link fragment.

    >>> parse_reset_fragment("#/reset-password#access_token=AAA&refresh_token=BBB")
    ResetTokens(access_token='AAA', refresh_token='BBB')
    """
    params = fragment_params(fragment)
    access_token = params.get("access_token")
    refresh_token = params.get("refresh_token")
    if not access_token or not refresh_token:
        return None
    return ResetTokens(access_token=access_token, refresh_token=refresh_token)


def strip_reset_tokens(fragment: str, route: Optional[str] = None) -> str:
    """
    Fragment with the token segment removed.

    "#/reset-password#access_token=..." → "#/reset-password"
    "#access_token=..."                 → "#<route>"
    """
    route = route or settings.reset_password_route
    base = fragment[: fragment.rindex("#")] if fragment.count("#") > 1 else ""
    if base.startswith("#/"):
        return base
    return f"#{route}"


class PasswordResetService:
    def __init__(self, client: BackendClient):
        self.client = client

    async def request_reset(self, email: str) -> None:
        try:
            await self.client.reset_password_for_email(
                email, redirect_to=settings.reset_password_redirect
            )
        except BackendError as e:
            logger.info("Password reset request rejected: %s", e.message)
            raise ValidationError(message=RESET_EMAIL_FAILED_MESSAGE, field="email") from e
        logger.info("Password reset email requested")

    async def establish_recovery_session(self, fragment: str) -> RecoveryResult:
        tokens = parse_reset_fragment(fragment)
        if tokens is None:
            # Direct visit: nothing to verify, keep whatever session exists
            return RecoveryResult(verified=False, fragment=fragment or f"#{settings.reset_password_route}")

        try:
            await self.client.set_session(
                tokens.access_token,
                tokens.refresh_token,
                event=AuthEvent.PASSWORD_RECOVERY,
            )
        except DaybookError as e:
            logger.info("Recovery link rejected: %s", e.message)
            raise ValidationError(message=INVALID_LINK_MESSAGE, field="fragment") from e

        return RecoveryResult(verified=True, fragment=strip_reset_tokens(fragment))

    async def update_password(self, password: str) -> None:
        try:
            await self.client.update_user(password=password)
        except BackendError as e:
            raise ValidationError(message=e.message, field="password") from e
        logger.info("Password updated")
