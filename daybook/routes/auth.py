"""
Daybook Backend: Authentication Route Handlers
===============================================

What:  Sign-in, sign-up, sign-out and password recovery over HTTP.
How:   Delegates to SessionStore and PasswordResetService of the AppContext.

Status codes:
    login     200 ok / 401 credentials rejected (body still {ok: false, error})
    signup    201 signed in / 202 confirmation email sent / 400 failed
    logout    204 always
"""

import logging

from fastapi import APIRouter, Depends, Response, status

from daybook.context import AppContext, get_app_context
from daybook.exceptions import AuthenticationRequiredError
from daybook.schemas.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    PasswordUpdateRequest,
    RecoverySessionRequest,
    RecoverySessionResponse,
    SessionResponse,
    SignupRequest,
    SignupResponse,
)
from daybook.schemas.common import ErrorResponse
from daybook.services.session_store import SignupOutcome

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])

LOGIN_FAILED_MESSAGE = "Please check your credentials and try again."

_SIGNUP_STATUS = {
    SignupOutcome.SESSION_ACTIVE: status.HTTP_201_CREATED,
    SignupOutcome.CONFIRMATION_REQUIRED: status.HTTP_202_ACCEPTED,
    SignupOutcome.FAILED: status.HTTP_400_BAD_REQUEST,
}


@router.get("/session", response_model=SessionResponse, summary="Current signed-in user")
async def get_session(ctx: AppContext = Depends(get_app_context)) -> SessionResponse:
    return SessionResponse(user=ctx.sessions.identity)


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={401: {"description": "Credentials rejected", "model": LoginResponse}},
    summary="Sign in with email and password",
)
async def login(
    body: LoginRequest,
    response: Response,
    ctx: AppContext = Depends(get_app_context),
) -> LoginResponse:
    if await ctx.sessions.login(body.email, body.password):
        return LoginResponse(ok=True, user=ctx.sessions.identity)
    response.status_code = status.HTTP_401_UNAUTHORIZED
    return LoginResponse(ok=False, error=LOGIN_FAILED_MESSAGE)


@router.post(
    "/signup",
    response_model=SignupResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        202: {"description": "Account created; email confirmation required", "model": SignupResponse},
        400: {"description": "Signup failed", "model": SignupResponse},
    },
    summary="Create an account",
)
async def signup(
    body: SignupRequest,
    response: Response,
    ctx: AppContext = Depends(get_app_context),
) -> SignupResponse:
    result = await ctx.sessions.signup(body.email, body.password, body.name)
    response.status_code = _SIGNUP_STATUS[result.outcome]
    return SignupResponse(
        ok=result.ok,
        needs_email_confirm=result.needs_email_confirm,
        outcome=result.outcome,
        error=result.error,
        user=ctx.sessions.identity if result.outcome is SignupOutcome.SESSION_ACTIVE else None,
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT, summary="Sign out")
async def logout(ctx: AppContext = Depends(get_app_context)) -> Response:
    await ctx.sessions.logout()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/forgot-password",
    status_code=status.HTTP_202_ACCEPTED,
    responses={400: {"description": "Unknown email", "model": ErrorResponse}},
    summary="Email a password reset link",
)
async def forgot_password(
    body: ForgotPasswordRequest,
    ctx: AppContext = Depends(get_app_context),
) -> dict:
    await ctx.password_reset.request_reset(body.email)
    return {"message": "We sent you a password reset link."}


@router.post(
    "/recovery-session",
    response_model=RecoverySessionResponse,
    responses={400: {"description": "Invalid or expired link", "model": ErrorResponse}},
    summary="Adopt the session carried by a password reset link",
)
async def recovery_session(
    body: RecoverySessionRequest,
    ctx: AppContext = Depends(get_app_context),
) -> RecoverySessionResponse:
    result = await ctx.password_reset.establish_recovery_session(body.fragment)
    return RecoverySessionResponse(verified=result.verified, fragment=result.fragment)


@router.post(
    "/password",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        400: {"description": "Password rejected", "model": ErrorResponse},
        401: {"description": "No session", "model": ErrorResponse},
    },
    summary="Set a new password for the signed-in user",
)
async def update_password(
    body: PasswordUpdateRequest,
    ctx: AppContext = Depends(get_app_context),
) -> Response:
    if await ctx.client.get_session() is None:
        raise AuthenticationRequiredError()
    await ctx.password_reset.update_password(body.password)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
