"""
Daybook Backend: Session Store
===============================

What:  Single source of truth for "who is signed in".
How:   Holds the current Identity. It is written by three paths:

    1. restore_session(), at start(): the persisted session, if any
    2. login() / signup() / logout(): the result of a direct auth call
    3. the feed consumer task: every AuthStateChange the backend client
       publishes (sign-in, refresh, recovery, sign-out)

       Paths 2 and 3 race; the last writer wins. The feed never applies the
       session carried by a change, it re-reads the client's current one,
       so both writers always converge on the same user.

Identity listeners:
    Components that depend on the identity (the Entry Repository) register
    an async callback with add_listener(). Every write awaits each listener
    in registration order, so by the time login() returns the listener has
    already reacted.

Result contract:
    login()  → bool, never raises for bad credentials or transport failure
    signup() → SignupResult, never raises
    logout() → always ends signed out
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from pydantic import BaseModel

from daybook.config import settings
from daybook.exceptions import BackendError, DaybookError
from daybook.models.session import AuthSession, AuthStateChange, Identity
from daybook.services.backend_client import AuthSubscription, BackendClient

logger = logging.getLogger(__name__)

IdentityListener = Callable[[Optional[Identity]], Awaitable[None]]

EMAIL_IN_USE_MESSAGE = "This email is already in use. Please use a different email or sign in."
SIGNUP_FAILED_MESSAGE = "Failed to create account. Please try again."
UNEXPECTED_SIGNUP_MESSAGE = "An unexpected error occurred. Please try again."


class SignupOutcome(str, Enum):
    """
    The three possible results of a signup. Exactly one applies:

        SESSION_ACTIVE         account created, backend returned a live session
        CONFIRMATION_REQUIRED  account created, user must confirm by email first
        FAILED                 no account created (see SignupResult.error)
    """

    SESSION_ACTIVE = "session_active"
    CONFIRMATION_REQUIRED = "confirmation_required"
    FAILED = "failed"


class SignupResult(BaseModel):
    outcome: SignupOutcome
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome is not SignupOutcome.FAILED

    @property
    def needs_email_confirm(self) -> bool:
        return self.outcome is SignupOutcome.CONFIRMATION_REQUIRED

    @classmethod
    def failed(cls, error: str) -> "SignupResult":
        return cls(outcome=SignupOutcome.FAILED, error=error)


def _is_unconfirmed_duplicate(user: Optional[dict]) -> bool:
    """
    Hosted-auth quirk: signing up again with an email that is registered
    but not yet confirmed succeeds with HTTP 200 and no error, but the
    returned user has an empty `identities` list. That empty list is the
    only signal that no new account was created.
    """
    if not user:
        return False
    identities = user.get("identities")
    return isinstance(identities, list) and len(identities) == 0


class SessionStore:
    """
    Process-wide authenticated identity, scoped to one AppContext.

    Lifecycle:
        store = SessionStore(client)
        await store.start()     # restore + subscribe
        ...
        await store.close()     # unsubscribe + stop consumer
    """

    def __init__(self, client: BackendClient):
        self.client = client
        self._identity: Optional[Identity] = None
        self._listeners: List[IdentityListener] = []
        self._subscription: Optional[AuthSubscription] = None
        self._consumer: Optional[asyncio.Task] = None

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def is_authenticated(self) -> bool:
        return self._identity is not None

    def add_listener(self, listener: IdentityListener) -> None:
        self._listeners.append(listener)

    async def _set_identity(self, identity: Optional[Identity]) -> None:
        self._identity = identity
        for listener in self._listeners:
            await listener(identity)

    async def _set_from_session(self, session: Optional[AuthSession]) -> None:
        await self._set_identity(session.identity if session else None)

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def start(self) -> None:
        await self.restore_session()
        if self._subscription is None:
            self._subscription = self.client.subscribe()
            self._consumer = asyncio.create_task(
                self._consume(self._subscription), name="daybook-session-feed"
            )

    async def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        if self._consumer is not None:
            await self._consumer
            self._consumer = None

    async def _consume(self, subscription: AuthSubscription) -> None:
        async for change in subscription:
            await self._handle_change(change)

    async def _handle_change(self, change: AuthStateChange) -> None:
        # A notification means "re-read the client". Applying the client's
        # current session instead of the one carried by the change means a
        # late SIGNED_IN can never bring back a session that has since ended.
        logger.debug("Session change: %s", change.event.value)
        try:
            await self._set_from_session(self.client.current_session)
        except Exception:
            # A failing listener must not end the feed for the rest of the process
            logger.exception("Identity listener failed while handling %s", change.event.value)

    # ── Operations ────────────────────────────────────────────────────────

    async def restore_session(self) -> None:
        """Adopt the persisted session if one exists; no effect otherwise."""
        try:
            session = await self.client.get_session()
        except DaybookError as e:
            logger.warning("Could not restore session: %s", e.message)
            return
        if session is None or session.identity is None:
            return
        logger.info("Restored session for user %s", session.identity.id)
        await self._set_from_session(session)

    async def login(self, email: str, password: str) -> bool:
        try:
            session = await self.client.sign_in_with_password(email, password)
        except DaybookError as e:
            logger.info("Login failed: %s", e.message)
            return False
        identity = session.identity
        if identity is None:
            return False
        await self._set_identity(identity)
        logger.info("User %s signed in", identity.id)
        return True

    async def signup(self, email: str, password: str, name: str) -> SignupResult:
        try:
            response = await self.client.sign_up(
                email,
                password,
                metadata={"name": name},
                redirect_to=settings.app_url,
            )

            if _is_unconfirmed_duplicate(response.user):
                logger.info("Signup rejected: email registered but unconfirmed")
                return SignupResult.failed(EMAIL_IN_USE_MESSAGE)

            if response.session is not None and response.session.identity is not None:
                await self._set_identity(response.session.identity)
                return SignupResult(outcome=SignupOutcome.SESSION_ACTIVE)

            return SignupResult(outcome=SignupOutcome.CONFIRMATION_REQUIRED)

        except BackendError as e:
            if "already registered" in e.message.lower():
                return SignupResult.failed(EMAIL_IN_USE_MESSAGE)
            logger.warning("Signup error: %s", e.message)
            return SignupResult.failed(e.message or SIGNUP_FAILED_MESSAGE)
        except Exception:
            logger.exception("Unexpected error during signup")
            return SignupResult.failed(UNEXPECTED_SIGNUP_MESSAGE)

    async def logout(self) -> None:
        try:
            await self.client.sign_out()
        except DaybookError as e:
            logger.warning("Backend sign-out failed, clearing local session anyway: %s", e.message)
        await self._set_identity(None)
