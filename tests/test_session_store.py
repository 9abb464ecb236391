"""
Daybook Backend: Session Store Tests
=====================================

What:  Tests for SessionStore (login, signup outcomes, logout, session feed).
How:   Real BackendClient against the in-memory FakeHostedBackend; a few
       failure paths patch the client with AsyncMock.

What we test:
    ✅ login() returns True/False and never raises
    ✅ signup() maps every backend answer to exactly one SignupOutcome
    ✅ logout() always ends signed out
    ✅ Restored sessions and feed notifications update the identity
"""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from daybook.models.session import AuthEvent, AuthSession
from daybook.services.backend_client import BackendClient
from daybook.services.session_storage import MemorySessionStorage
from daybook.services.session_store import (
    EMAIL_IN_USE_MESSAGE,
    UNEXPECTED_SIGNUP_MESSAGE,
    SessionStore,
    SignupOutcome,
)


class TestLogin:
    """Tests for SessionStore.login()."""

    def setup_method(self):
        self.email = "ana@example.com"

    @pytest.mark.asyncio
    async def test_login_success_sets_identity(self, backend_client, fake_backend):
        user = fake_backend.add_user(self.email, "secret1", name="Ana")
        store = SessionStore(backend_client)

        assert await store.login(self.email, "secret1") is True
        assert store.identity.id == user["id"]
        assert store.identity.email == self.email
        assert store.is_authenticated

    @pytest.mark.asyncio
    async def test_wrong_password_returns_false(self, backend_client, fake_backend):
        fake_backend.add_user(self.email, "secret1")
        store = SessionStore(backend_client)

        assert await store.login(self.email, "wrong") is False
        assert store.identity is None

    @pytest.mark.asyncio
    async def test_unreachable_backend_returns_false(self, backend_client, fake_backend):
        fake_backend.fail_transport("POST", "/auth/v1/token")
        store = SessionStore(backend_client)

        assert await store.login(self.email, "secret1") is False

    @pytest.mark.asyncio
    async def test_listeners_run_before_login_returns(self, backend_client, fake_backend):
        fake_backend.add_user(self.email, "secret1")
        store = SessionStore(backend_client)
        seen = []

        async def listener(identity):
            seen.append(identity.email if identity else None)

        store.add_listener(listener)
        await store.login(self.email, "secret1")

        assert seen == [self.email]


class TestSignup:
    """Tests for the three signup outcomes and their error messages."""

    @pytest.mark.asyncio
    async def test_auto_confirmed_signup_is_session_active(self, backend_client):
        store = SessionStore(backend_client)

        result = await store.signup("new@example.com", "secret1", "Nia")

        assert result.outcome is SignupOutcome.SESSION_ACTIVE
        assert result.ok and not result.needs_email_confirm
        assert store.identity.display_name == "Nia"

    @pytest.mark.asyncio
    async def test_confirmation_required_leaves_signed_out(self, backend_client, fake_backend):
        fake_backend.auto_confirm = False
        store = SessionStore(backend_client)

        result = await store.signup("new@example.com", "secret1", "Nia")

        assert result.outcome is SignupOutcome.CONFIRMATION_REQUIRED
        assert result.ok and result.needs_email_confirm
        assert result.error is None
        assert store.identity is None

    @pytest.mark.asyncio
    async def test_signup_redirects_to_app_url(self, backend_client, fake_backend):
        await SessionStore(backend_client).signup("new@example.com", "secret1", "Nia")

        request = fake_backend.requests_to("POST", "/auth/v1/signup")[0]
        assert request.url.params["redirect_to"] == "https://journal.test"

    @pytest.mark.asyncio
    async def test_unconfirmed_duplicate_is_email_in_use(self, backend_client, fake_backend):
        """Registered-but-unconfirmed email: HTTP 200, empty identities, no account."""
        fake_backend.add_user("dup@example.com", "secret1", confirmed=False)
        store = SessionStore(backend_client)

        result = await store.signup("dup@example.com", "secret1", "Dup")

        assert result.outcome is SignupOutcome.FAILED
        assert result.error == EMAIL_IN_USE_MESSAGE
        assert store.identity is None

    @pytest.mark.asyncio
    async def test_already_registered_error_is_email_in_use(self, backend_client, fake_backend):
        fake_backend.add_user("taken@example.com", "secret1")
        store = SessionStore(backend_client)

        result = await store.signup("taken@example.com", "secret1", "Taken")

        assert result.outcome is SignupOutcome.FAILED
        assert result.error == EMAIL_IN_USE_MESSAGE

    @pytest.mark.asyncio
    async def test_already_registered_match_ignores_case(self, backend_client, fake_backend):
        fake_backend.fail("POST", "/auth/v1/signup", 422, {"msg": "Email Already Registered"})

        result = await SessionStore(backend_client).signup("x@example.com", "secret1", "X")

        assert result.error == EMAIL_IN_USE_MESSAGE

    @pytest.mark.asyncio
    async def test_other_backend_error_passes_message_through(self, backend_client, fake_backend):
        fake_backend.fail("POST", "/auth/v1/signup", 422, {"msg": "Password should be at least 6 characters"})

        result = await SessionStore(backend_client).signup("x@example.com", "123", "X")

        assert result.outcome is SignupOutcome.FAILED
        assert result.error == "Password should be at least 6 characters"

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_generic_failure(self, backend_client):
        store = SessionStore(backend_client)
        with patch.object(backend_client, "sign_up", AsyncMock(side_effect=RuntimeError("kaboom"))):
            result = await store.signup("x@example.com", "secret1", "X")

        assert result.outcome is SignupOutcome.FAILED
        assert result.error == UNEXPECTED_SIGNUP_MESSAGE


class TestLogout:
    """Tests for SessionStore.logout()."""

    @pytest.mark.asyncio
    async def test_logout_clears_identity(self, backend_client, fake_backend):
        fake_backend.add_user("ana@example.com", "secret1")
        store = SessionStore(backend_client)
        await store.login("ana@example.com", "secret1")

        await store.logout()

        assert store.identity is None
        assert backend_client.current_session is None

    @pytest.mark.asyncio
    async def test_logout_clears_identity_when_backend_fails(self, backend_client, fake_backend):
        fake_backend.add_user("ana@example.com", "secret1")
        store = SessionStore(backend_client)
        await store.login("ana@example.com", "secret1")
        fake_backend.fail("POST", "/auth/v1/logout", 500, {"msg": "boom"})

        await store.logout()

        assert store.identity is None

    @pytest.mark.asyncio
    async def test_logout_when_signed_out_is_harmless(self, backend_client):
        store = SessionStore(backend_client)

        await store.logout()

        assert store.identity is None


class TestRestoreAndFeed:
    """Tests for start(): restoring the stored session and following the feed."""

    @pytest.mark.asyncio
    async def test_start_restores_persisted_session(self, fake_backend):
        fake_backend.add_user("ana@example.com", "secret1")
        payload = fake_backend.issue_session(fake_backend.users["ana@example.com"])
        client = BackendClient(
            base_url="https://backend.test",
            anon_key="anon-test-key",
            storage=MemorySessionStorage(AuthSession.from_payload(payload)),
            transport=httpx.MockTransport(fake_backend.handle),
        )
        store = SessionStore(client)

        await store.start()

        assert store.identity.email == "ana@example.com"
        await store.close()
        await client.aclose()

    @pytest.mark.asyncio
    async def test_start_without_session_stays_signed_out(self, backend_client):
        store = SessionStore(backend_client)

        await store.start()

        assert store.identity is None
        await store.close()

    @pytest.mark.asyncio
    async def test_feed_applies_sessions_set_elsewhere(self, backend_client, fake_backend, settle):
        """A session adopted directly on the client reaches the store via the feed."""
        user = fake_backend.add_user("ana@example.com", "secret1")
        payload = fake_backend.issue_session(fake_backend.users["ana@example.com"])
        store = SessionStore(backend_client)
        await store.start()

        await backend_client.set_session(
            payload["access_token"], payload["refresh_token"], event=AuthEvent.PASSWORD_RECOVERY
        )
        await settle()

        assert store.identity.id == user["id"]
        await store.close()

    @pytest.mark.asyncio
    async def test_late_sign_in_event_cannot_resurrect_session(self, backend_client, fake_backend, settle):
        fake_backend.add_user("ana@example.com", "secret1")
        store = SessionStore(backend_client)
        await store.start()

        await store.login("ana@example.com", "secret1")
        await store.logout()
        await settle()

        assert store.identity is None
        await store.close()

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_stop_feed(self, backend_client, fake_backend, settle):
        fake_backend.add_user("ana@example.com", "secret1")
        payload = fake_backend.issue_session(fake_backend.users["ana@example.com"])
        store = SessionStore(backend_client)
        await store.start()
        calls = []

        async def flaky(identity):
            calls.append(identity)
            if len(calls) == 1:
                raise RuntimeError("listener broke")

        store.add_listener(flaky)
        await backend_client.set_session(payload["access_token"], payload["refresh_token"])
        await settle()
        await backend_client.sign_out()
        await settle()

        assert len(calls) == 2
        assert store.identity is None
        await store.close()
