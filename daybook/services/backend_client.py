"""
Daybook Backend: Hosted Backend Client
=======================================

What:  Async HTTP client for the hosted backend-as-a-service that owns all
       users, sessions and journal rows.
How:   One shared httpx.AsyncClient talks to two REST surfaces:

    /auth/v1/...       hosted auth (sign in/up/out, recovery, user update)
    /rest/v1/<table>   generic row store (select / insert / update / delete)

       Every request carries the project's anon key as `apikey`. Session
       calls and row calls use the signed-in access token as the bearer.

Session-change feed:
    Whenever the client gains, refreshes or loses a session it publishes an
    AuthStateChange to every live AuthSubscription. Subscriptions are async
    iterators, so one dedicated consumer task per subscriber reads them in
    order:

        subscription = client.subscribe()
        async for change in subscription:
            ...
        subscription.unsubscribe()   # ends the iteration

Error Handling:
    - Non-2xx responses raise BackendError carrying the backend's own message
      (body keys `msg`, `message`, `error_description` or `error`).
    - Transport failures (timeouts, refused connections) raise BackendError
      with a generic message; the original httpx error is chained.
    - Nothing is retried. A failed call surfaces immediately to the caller.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

from daybook.config import settings
from daybook.exceptions import AuthenticationRequiredError, BackendError
from daybook.models.session import AuthEvent, AuthSession, AuthStateChange
from daybook.services.session_storage import SessionStorage, storage_from_settings

logger = logging.getLogger(__name__)

AUTH_PATH = "/auth/v1"
REST_PATH = "/rest/v1"

# Keys under which the auth API and the row store put their error text,
# in order of preference.
_ERROR_MESSAGE_KEYS = ("msg", "message", "error_description", "error")


class SignUpResponse(BaseModel):
    """
    What the sign-up endpoint returned.

    `session` is present only when the project auto-confirms new accounts.
    `user` may be present with an empty `identities` list; see
    SessionStore.signup for what that means.
    """

    user: Optional[Dict[str, Any]] = None
    session: Optional[AuthSession] = None


class AuthSubscription:
    """
    Cancellable, async-iterable view of the session-change feed.

    Each subscription owns an unbounded queue, so publishing never blocks
    the client. unsubscribe() detaches the queue and ends iteration once
    already-queued changes have been consumed.
    """

    _CLOSED = object()

    def __init__(self, client: "BackendClient"):
        self._client = client
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self.active = True

    def _publish(self, change: AuthStateChange) -> None:
        if self.active:
            self._queue.put_nowait(change)

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._client._subscriptions.discard(self)
        self._queue.put_nowait(self._CLOSED)

    def __aiter__(self) -> "AuthSubscription":
        return self

    async def __anext__(self) -> AuthStateChange:
        item = await self._queue.get()
        if item is self._CLOSED:
            raise StopAsyncIteration
        return item


class BackendClient:
    """
    Auth and session half of the hosted backend contract.

    Operations (all async, all single round trips):
        get_session()               persisted session, refreshed when expired
        sign_in_with_password()     email + password → AuthSession
        sign_up()                   new account with metadata + redirect
        sign_out()                  end the session (local state always cleared)
        reset_password_for_email()  send a recovery email
        set_session()               adopt an access/refresh token pair
        update_user()               change the signed-in user's password
        subscribe()                 session-change feed
        health_check()              reachability probe
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        anon_key: Optional[str] = None,
        storage: Optional[SessionStorage] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        base_url = base_url if base_url is not None else settings.backend_url
        anon_key = anon_key if anon_key is not None else settings.backend_anon_key
        self.anon_key = anon_key
        self.storage = storage or storage_from_settings(settings.session_file)
        self._http = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout if timeout is not None else settings.request_timeout,
            headers={"apikey": anon_key},
            transport=transport,
        )
        self._session: Optional[AuthSession] = None
        self._session_loaded = False
        self._subscriptions: set = set()

    async def aclose(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.unsubscribe()
        await self._http.aclose()

    # ══════════════════════════════════════════════════════════════════════
    # Transport
    # ══════════════════════════════════════════════════════════════════════

    async def request(
        self,
        method: str,
        path: str,
        *,
        token: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Perform one request and return the decoded JSON body (None when empty).

        `token` is the bearer credential; the anon key is used when omitted.
        """
        request_headers = {"Authorization": f"Bearer {token or self.anon_key}"}
        if headers:
            request_headers.update(headers)

        try:
            response = await self._http.request(
                method,
                path,
                params=params,
                json=json,
                headers=request_headers,
            )
        except httpx.HTTPError as e:
            logger.warning("Backend %s %s failed: %s", method, path, type(e).__name__)
            raise BackendError(
                message="Could not reach the journal backend. Please check your connection and try again.",
                context={"error_type": type(e).__name__, "path": path},
            ) from e

        if response.is_error:
            raise self._error_from_response(response)

        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _error_from_response(response: httpx.Response) -> BackendError:
        body: Dict[str, Any] = {}
        try:
            decoded = response.json()
            if isinstance(decoded, dict):
                body = decoded
        except ValueError:
            pass

        message = next(
            (str(body[key]) for key in _ERROR_MESSAGE_KEYS if body.get(key)),
            response.reason_phrase or f"Backend returned HTTP {response.status_code}",
        )
        code = body.get("error_code") or body.get("code")
        logger.info(
            "Backend rejected %s %s: %d %s",
            response.request.method,
            response.request.url.path,
            response.status_code,
            message,
        )
        return BackendError(
            message=message,
            status_code=response.status_code,
            code=str(code) if code is not None else None,
        )

    # ══════════════════════════════════════════════════════════════════════
    # Session state + feed
    # ══════════════════════════════════════════════════════════════════════

    @property
    def current_session(self) -> Optional[AuthSession]:
        """Session as last adopted or dropped, without loading or refreshing."""
        return self._session

    def subscribe(self) -> AuthSubscription:
        subscription = AuthSubscription(self)
        self._subscriptions.add(subscription)
        return subscription

    def _publish(self, event: AuthEvent, session: Optional[AuthSession]) -> None:
        change = AuthStateChange(event=event, session=session)
        for subscription in list(self._subscriptions):
            subscription._publish(change)
        logger.debug("Published %s to %d subscriber(s)", event.value, len(self._subscriptions))

    async def _adopt_session(self, session: AuthSession, event: AuthEvent) -> AuthSession:
        self._session = session
        self._session_loaded = True
        await self.storage.save(session)
        self._publish(event, session)
        return session

    async def _drop_session(self) -> None:
        had_session = self._session is not None
        self._session = None
        self._session_loaded = True
        await self.storage.clear()
        if had_session:
            self._publish(AuthEvent.SIGNED_OUT, None)

    async def get_session(self) -> Optional[AuthSession]:
        """
        Current session, loading the persisted one on first use.

        An expired access token is refreshed once. If the refresh is
        rejected the persisted session is discarded and None is returned.
        """
        if not self._session_loaded:
            self._session = await self.storage.load()
            self._session_loaded = True
            if self._session is not None:
                self._publish(AuthEvent.INITIAL_SESSION, self._session)

        session = self._session
        if session is None or not session.is_expired():
            return session

        try:
            return await self._refresh_session(session.refresh_token)
        except BackendError as e:
            logger.info("Persisted session could not be refreshed: %s", e.message)
            await self._drop_session()
            return None

    async def access_token(self) -> str:
        """Bearer token for row-store calls; raises when nobody is signed in."""
        session = await self.get_session()
        if session is None:
            raise AuthenticationRequiredError()
        return session.access_token

    async def _refresh_session(self, refresh_token: str) -> AuthSession:
        data = await self.request(
            "POST",
            f"{AUTH_PATH}/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        session = self._session_from_payload(data)
        return await self._adopt_session(session, AuthEvent.TOKEN_REFRESHED)

    @staticmethod
    def _session_from_payload(data: Any) -> AuthSession:
        if not isinstance(data, dict) or not data.get("access_token"):
            raise BackendError(message="The backend did not return a session.")
        return AuthSession.from_payload(data)

    # ══════════════════════════════════════════════════════════════════════
    # Auth operations
    # ══════════════════════════════════════════════════════════════════════

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        data = await self.request(
            "POST",
            f"{AUTH_PATH}/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        session = self._session_from_payload(data)
        return await self._adopt_session(session, AuthEvent.SIGNED_IN)

    async def sign_up(
        self,
        email: str,
        password: str,
        metadata: Optional[Dict[str, Any]] = None,
        redirect_to: Optional[str] = None,
    ) -> SignUpResponse:
        """
        Register a new account.

        When the project auto-confirms accounts the response is a full
        session; otherwise it is the bare user object and the user must
        follow the emailed link (which lands on `redirect_to`).
        """
        params = {"redirect_to": redirect_to} if redirect_to else None
        data = await self.request(
            "POST",
            f"{AUTH_PATH}/signup",
            params=params,
            json={"email": email, "password": password, "data": metadata or {}},
        )
        data = data or {}

        if data.get("access_token"):
            session = AuthSession.from_payload(data)
            await self._adopt_session(session, AuthEvent.SIGNED_IN)
            return SignUpResponse(user=session.user, session=session)

        user = data.get("user") if isinstance(data.get("user"), dict) else data
        return SignUpResponse(user=user or None, session=None)

    async def sign_out(self) -> None:
        """
        End the session remotely, then locally.

        Local state is cleared even when the remote call fails; the
        BackendError is re-raised afterwards so the caller can log it.
        """
        session = self._session
        try:
            if session is not None:
                await self.request("POST", f"{AUTH_PATH}/logout", token=session.access_token)
        finally:
            await self._drop_session()

    async def reset_password_for_email(self, email: str, redirect_to: str) -> None:
        await self.request(
            "POST",
            f"{AUTH_PATH}/recover",
            params={"redirect_to": redirect_to},
            json={"email": email},
        )

    async def set_session(
        self,
        access_token: str,
        refresh_token: str,
        event: AuthEvent = AuthEvent.SIGNED_IN,
    ) -> AuthSession:
        """
        Adopt a token pair obtained out of band (e.g. a recovery link).

        The access token is verified by fetching its user. An expired access
        token is exchanged using the refresh token.
        """
        try:
            user = await self.request("GET", f"{AUTH_PATH}/user", token=access_token)
        except BackendError as e:
            if e.status_code != 401 or not refresh_token:
                raise
            data = await self.request(
                "POST",
                f"{AUTH_PATH}/token",
                params={"grant_type": "refresh_token"},
                json={"refresh_token": refresh_token},
            )
            session = self._session_from_payload(data)
            return await self._adopt_session(session, event)

        session = AuthSession(
            access_token=access_token,
            refresh_token=refresh_token,
            user=user or {},
        )
        return await self._adopt_session(session, event)

    async def update_user(self, password: str) -> Dict[str, Any]:
        session = await self.get_session()
        if session is None:
            raise AuthenticationRequiredError()
        user = await self.request(
            "PUT",
            f"{AUTH_PATH}/user",
            token=session.access_token,
            json={"password": password},
        )
        updated = session.model_copy(update={"user": user or session.user})
        await self._adopt_session(updated, AuthEvent.USER_UPDATED)
        return updated.user

    async def health_check(self) -> bool:
        try:
            await self.request("GET", f"{AUTH_PATH}/health")
            return True
        except BackendError as e:
            logger.warning("Backend health check failed: %s", e.message)
            return False


class EntryTable:
    """
    Row-store half of the backend contract, bound to the entries table.

    Every call is authorized with the signed-in user's access token, so the
    backend's row policies apply on top of the explicit `user_id` filter.
    """

    def __init__(self, client: BackendClient, table: Optional[str] = None):
        self.client = client
        self.path = f"{REST_PATH}/{table or settings.entries_table}"

    async def select_for_owner(self, owner_id: str) -> List[Dict[str, Any]]:
        """All rows of `owner_id`, most recent entry date first."""
        token = await self.client.access_token()
        rows = await self.client.request(
            "GET",
            self.path,
            token=token,
            params={"select": "*", "user_id": f"eq.{owner_id}", "order": "date.desc"},
        )
        return rows or []

    async def insert(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """Insert one row and return it as stored (with id and created_at)."""
        token = await self.client.access_token()
        rows = await self.client.request(
            "POST",
            self.path,
            token=token,
            json=row,
            headers={"Prefer": "return=representation"},
        )
        if isinstance(rows, list):
            rows = rows[0] if rows else None
        if not rows:
            raise BackendError(message="Failed to insert")
        return rows

    async def update(self, entry_id: str, changes: Dict[str, Any]) -> None:
        token = await self.client.access_token()
        await self.client.request(
            "PATCH",
            self.path,
            token=token,
            params={"id": f"eq.{entry_id}"},
            json=changes,
            headers={"Prefer": "return=minimal"},
        )

    async def delete(self, entry_id: str) -> None:
        token = await self.client.access_token()
        await self.client.request(
            "DELETE",
            self.path,
            token=token,
            params={"id": f"eq.{entry_id}"},
        )


__all__ = [
    "AuthSubscription",
    "BackendClient",
    "EntryTable",
    "SignUpResponse",
]
