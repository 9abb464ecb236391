"""
Daybook Backend: Application Context
=====================================

What:  Owns the one BackendClient, SessionStore, EntryRepository and
       PasswordResetService of a running application.
How:   Created and started by the FastAPI lifespan, stored on `app.state`,
       handed to route handlers through the get_app_context dependency,
       and closed on shutdown. Nothing here is a module-level global, so
       tests can build as many independent contexts as they need.
"""

import logging
from typing import Optional

from fastapi import Request

from daybook.services.backend_client import BackendClient, EntryTable
from daybook.services.entry_repository import EntryRepository
from daybook.services.password_reset import PasswordResetService
from daybook.services.session_store import SessionStore

logger = logging.getLogger(__name__)


class AppContext:
    def __init__(self, client: Optional[BackendClient] = None):
        self.client = client or BackendClient()
        self.sessions = SessionStore(self.client)
        self.entries = EntryRepository(EntryTable(self.client), self.sessions)
        self.entries.bind()
        self.password_reset = PasswordResetService(self.client)

    async def start(self) -> None:
        """Restore the persisted session and start following session changes."""
        await self.sessions.start()
        identity = self.sessions.identity
        logger.info(
            "Application context started (%s)",
            f"signed in as {identity.id}" if identity else "signed out",
        )

    async def close(self) -> None:
        await self.sessions.close()
        await self.client.aclose()
        logger.info("Application context closed")


def get_app_context(request: Request) -> AppContext:
    """FastAPI dependency returning the context created in the lifespan."""
    return request.app.state.context
