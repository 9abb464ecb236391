"""
Daybook Backend: Test Configuration (conftest.py)
==================================================

What:  Shared pytest fixtures for the entire test suite.
How:   The hosted backend is replaced by FakeHostedBackend, an in-memory
       imitation of its auth and row-store endpoints served through
       httpx.MockTransport. Every BackendClient built here talks to it, so
       services are exercised end to end without a network.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── fake_backend: in-memory hosted backend (users, tokens, rows)
    ├── backend_client: BackendClient wired to fake_backend, in-memory session
    ├── app_context: started AppContext around backend_client
    ├── test_client: HTTPX AsyncClient for API endpoint testing
    ├── sample_row: one entry-table row as the backend returns it
    └── settle: lets the session-feed consumer task catch up
"""

import asyncio
import itertools
import json
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

# Must run before any daybook import: settings are read at import time
os.environ["BACKEND_URL"] = "https://backend.test"
os.environ["BACKEND_ANON_KEY"] = "anon-test-key"
os.environ["SESSION_FILE"] = ""
os.environ["APP_URL"] = "https://journal.test"
os.environ["LOG_LEVEL"] = "WARNING"

from daybook.context import AppContext  # noqa: E402
from daybook.services.backend_client import BackendClient  # noqa: E402
from daybook.services.session_storage import MemorySessionStorage  # noqa: E402

BACKEND_URL = "https://backend.test"
ANON_KEY = "anon-test-key"


# ══════════════════════════════════════════════════════════════════════════
# Fake Hosted Backend
# ══════════════════════════════════════════════════════════════════════════


class FakeHostedBackend:
    """
    Minimal stand-in for the hosted auth + row-store service.

    Users:
        add_user(email, password, name, confirmed=True) registers an account.
        With auto_confirm=False, signup returns a bare user (no session);
        signing up again with an unconfirmed email returns a user whose
        `identities` list is empty, like the real service.

    Failure injection:
        fail("POST", "/rest/v1/journal_entries", 500, {"message": "boom"})
        makes the next matching request fail once.
        fail_transport("GET", "/auth/v1/health") raises httpx.ConnectError.

    Every request is appended to `requests` for assertions.
    """

    def __init__(self, auto_confirm: bool = True):
        self.auto_confirm = auto_confirm
        self.users: Dict[str, Dict[str, Any]] = {}
        self.access_tokens: Dict[str, str] = {}
        self.refresh_tokens: Dict[str, str] = {}
        self.rows: List[Dict[str, Any]] = []
        self.requests: List[httpx.Request] = []
        self._failures: Dict[Tuple[str, str], List[httpx.Response]] = {}
        self._transport_failures: set = set()
        self._counter = itertools.count(1)

    # ── Setup helpers ─────────────────────────────────────────────────────

    def add_user(self, email: str, password: str, name: str = "", confirmed: bool = True) -> Dict[str, Any]:
        user = {
            "id": str(uuid4()),
            "email": email,
            "password": password,
            "confirmed": confirmed,
            "user_metadata": {"name": name} if name else {},
        }
        self.users[email] = user
        return self.public_user(user)

    def add_row(self, owner_id: str, title: str, date: str, content: Optional[str] = "", **extra) -> Dict[str, Any]:
        row = {
            "id": extra.pop("id", str(uuid4())),
            "title": title,
            "content": content,
            "date": date,
            "created_at": extra.pop("created_at", "2024-01-01T09:00:00+00:00"),
            "updated_at": extra.pop("updated_at", None),
            "user_id": owner_id,
        }
        row.update(extra)
        self.rows.append(row)
        return row

    def issue_session(self, user: Dict[str, Any], expires_in: int = 3600) -> Dict[str, Any]:
        n = next(self._counter)
        access, refresh = f"access-{n}", f"refresh-{n}"
        self.access_tokens[access] = user["email"]
        self.refresh_tokens[refresh] = user["email"]
        return {
            "access_token": access,
            "refresh_token": refresh,
            "token_type": "bearer",
            "expires_in": expires_in,
            "user": self.public_user(user),
        }

    def fail(self, method: str, path: str, status_code: int, body: Optional[dict] = None) -> None:
        self._failures.setdefault((method, path), []).append(
            httpx.Response(status_code, json=body or {})
        )

    def fail_transport(self, method: str, path: str) -> None:
        self._transport_failures.add((method, path))

    @staticmethod
    def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "id": user["id"],
            "email": user["email"],
            "user_metadata": user["user_metadata"],
            "identities": [{"provider": "email", "identity_id": user["id"]}],
        }

    def requests_to(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    # ── Request handling ──────────────────────────────────────────────────

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key in self._transport_failures:
            raise httpx.ConnectError("connection refused", request=request)
        if self._failures.get(key):
            return self._failures[key].pop(0)

        path = request.url.path
        if path.startswith("/auth/v1/"):
            return self._handle_auth(request, path[len("/auth/v1/"):])
        if path == "/rest/v1/journal_entries":
            return self._handle_rows(request)
        return httpx.Response(404, json={"message": "Not found"})

    def _body(self, request: httpx.Request) -> Dict[str, Any]:
        return json.loads(request.content) if request.content else {}

    def _user_for(self, request: httpx.Request) -> Optional[Dict[str, Any]]:
        token = request.headers.get("authorization", "").removeprefix("Bearer ")
        email = self.access_tokens.get(token)
        return self.users.get(email) if email else None

    def _handle_auth(self, request: httpx.Request, endpoint: str) -> httpx.Response:
        body = self._body(request)

        if endpoint == "health":
            return httpx.Response(200, json={"name": "GoTrue"})

        if endpoint == "token":
            grant = request.url.params.get("grant_type")
            if grant == "password":
                user = self.users.get(body.get("email"))
                if user is None or user["password"] != body.get("password") or not user["confirmed"]:
                    return httpx.Response(
                        400,
                        json={"error": "invalid_grant", "error_description": "Invalid login credentials"},
                    )
                return httpx.Response(200, json=self.issue_session(user))
            if grant == "refresh_token":
                email = self.refresh_tokens.pop(body.get("refresh_token"), None)
                if email is None:
                    return httpx.Response(400, json={"msg": "Invalid Refresh Token"})
                return httpx.Response(200, json=self.issue_session(self.users[email]))

        if endpoint == "signup":
            email = body.get("email")
            existing = self.users.get(email)
            if existing is not None and existing["confirmed"]:
                return httpx.Response(422, json={"msg": "User already registered"})
            if existing is not None:
                user = self.public_user(existing)
                user["identities"] = []
                return httpx.Response(200, json=user)
            self.add_user(
                email,
                body.get("password"),
                (body.get("data") or {}).get("name", ""),
                confirmed=self.auto_confirm,
            )
            user = self.users[email]
            if self.auto_confirm:
                return httpx.Response(200, json=self.issue_session(user))
            return httpx.Response(200, json=self.public_user(user))

        if endpoint == "logout":
            token = request.headers.get("authorization", "").removeprefix("Bearer ")
            self.access_tokens.pop(token, None)
            return httpx.Response(204)

        if endpoint == "recover":
            if body.get("email") not in self.users:
                return httpx.Response(400, json={"msg": "User not found"})
            return httpx.Response(200, json={})

        if endpoint == "user":
            user = self._user_for(request)
            if user is None:
                return httpx.Response(401, json={"msg": "invalid JWT: token is expired"})
            if request.method == "PUT":
                if body.get("password") == user["password"]:
                    return httpx.Response(
                        422,
                        json={"msg": "New password should be different from the old password."},
                    )
                user["password"] = body.get("password")
            return httpx.Response(200, json=self.public_user(user))

        return httpx.Response(404, json={"msg": "Not found"})

    def _handle_rows(self, request: httpx.Request) -> httpx.Response:
        user = self._user_for(request)
        if user is None:
            return httpx.Response(401, json={"message": "JWT expired"})
        params = request.url.params

        if request.method == "GET":
            owner = params.get("user_id", "").removeprefix("eq.")
            rows = [r for r in self.rows if r["user_id"] == owner and r["user_id"] == user["id"]]
            rows.sort(key=lambda r: r["date"], reverse=True)
            return httpx.Response(200, json=rows)

        if request.method == "POST":
            body = self._body(request)
            row = {
                "id": str(uuid4()),
                "created_at": datetime.now(timezone.utc).isoformat(),
                "updated_at": None,
                **body,
            }
            self.rows.append(row)
            return httpx.Response(201, json=[row])

        entry_id = params.get("id", "").removeprefix("eq.")
        matching = [r for r in self.rows if r["id"] == entry_id and r["user_id"] == user["id"]]
        if request.method == "PATCH":
            for row in matching:
                row.update(self._body(request))
            return httpx.Response(204)
        if request.method == "DELETE":
            self.rows = [r for r in self.rows if r not in matching]
            return httpx.Response(204)

        return httpx.Response(405, json={"message": "Method not allowed"})


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures (created fresh for each test)
# ══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def fake_backend():
    """An empty hosted backend that auto-confirms new accounts."""
    return FakeHostedBackend()


@pytest_asyncio.fixture
async def backend_client(fake_backend):
    """
    BackendClient routed to fake_backend through httpx.MockTransport.

    Usage:
        async def test_sign_in(backend_client, fake_backend):
            fake_backend.add_user("a@example.com", "secret1")
            session = await backend_client.sign_in_with_password("a@example.com", "secret1")
    """
    client = BackendClient(
        base_url=BACKEND_URL,
        anon_key=ANON_KEY,
        storage=MemorySessionStorage(),
        transport=httpx.MockTransport(fake_backend.handle),
    )
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def app_context(backend_client):
    """Started AppContext (session feed running) around backend_client."""
    context = AppContext(client=backend_client)
    await context.start()
    yield context
    await context.sessions.close()


@pytest.fixture
def settle():
    """
    Returns a coroutine function that yields to the event loop until the
    session-feed consumer has processed everything published so far.
    """

    async def _settle(rounds: int = 20) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    return _settle


@pytest.fixture
def sample_row():
    """One row of the entry table exactly as the row store returns it."""
    return {
        "id": "0b5f1c1e-5d8e-4a43-9d7a-3f1f5f0c2a11",
        "title": "Trip",
        "content": "Beach",
        "date": "2024-03-01T00:00:00+00:00",
        "created_at": "2024-03-01T18:30:00.123456+00:00",
        "updated_at": None,
        "user_id": "9d2c4b1a-0000-4000-8000-000000000001",
    }


@pytest_asyncio.fixture
async def test_client(app_context):
    """
    Provides an async HTTP test client for endpoint testing.

    ASGITransport does not run the lifespan, so the app is built around
    the already-started app_context.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    from daybook.main import create_app

    app = create_app(context=app_context)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
