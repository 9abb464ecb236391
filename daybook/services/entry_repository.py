"""
Daybook Backend: Entry Repository
==================================

What:  CRUD façade over the hosted entry table, scoped to the signed-in
       identity, with a local read cache.
How:   The cache mirrors the backend rows of the current identity. Reads
       (get, entries) never touch the network. Mutations go to the backend
       first and patch the cache only after the backend confirms.

Cache lifecycle (driven by SessionStore identity changes):
    absent  → A     load() A's rows
    A       → A     nothing (same user re-announced by the session feed)
    A       → B     clear, then load() B's rows
    A       → absent  clear immediately

Failure contract:
    create/update/delete propagate BackendError and leave the cache exactly
    as it was. No retries; no optimistic pre-commit. A call that returns
    after its identity signed out (or was replaced) never touches the cache,
    so one user's rows cannot leak into the next user's cache.
"""

import logging
from datetime import date
from typing import List, Optional

from daybook.exceptions import AuthenticationRequiredError, BackendError
from daybook.models.entry import JournalEntry, utc_now
from daybook.models.session import Identity
from daybook.services.backend_client import EntryTable
from daybook.services.session_store import SessionStore

logger = logging.getLogger(__name__)


class EntryRepository:
    """
    Journal entries of the current identity.

    Responsibilities:
        - load():   fetch all rows, most recent entry date first
        - create(): insert + prepend to cache, returns the new id
        - update(): update by id + replace cached fields in place
        - delete(): delete by id + drop from cache
        - get():    cache lookup only; callers must have loaded first
    """

    def __init__(self, table: EntryTable, sessions: SessionStore):
        self.table = table
        self.sessions = sessions
        self._entries: List[JournalEntry] = []
        self._owner_id: Optional[str] = None
        self.is_loading = False

    def bind(self) -> None:
        """Follow identity changes of the session store."""
        self.sessions.add_listener(self.on_identity_changed)

    @property
    def entries(self) -> List[JournalEntry]:
        return list(self._entries)

    def _require_identity(self) -> Identity:
        identity = self.sessions.identity
        if identity is None:
            raise AuthenticationRequiredError()
        return identity

    def _still_signed_in_as(self, owner_id: str) -> bool:
        """False when the user signed out or switched while a call was in flight."""
        current = self.sessions.identity
        return current is not None and current.id == owner_id

    async def on_identity_changed(self, identity: Optional[Identity]) -> None:
        if identity is None:
            if self._owner_id is not None or self._entries:
                logger.debug("Identity cleared; dropping %d cached entries", len(self._entries))
            self._entries = []
            self._owner_id = None
            return

        if identity.id == self._owner_id:
            return

        self._entries = []
        self._owner_id = identity.id
        # The cache stays empty on failure; a later load() can fill it
        try:
            await self.load()
        except BackendError as e:
            logger.error("Could not load entries for user %s: %s", identity.id, e.message)
        except (KeyError, TypeError, ValueError):
            # Malformed row; pydantic's ValidationError is a ValueError
            logger.exception("Could not read entries for user %s", identity.id)

    async def load(self) -> None:
        identity = self.sessions.identity
        if identity is None:
            self._entries = []
            self._owner_id = None
            return

        self.is_loading = True
        try:
            rows = await self.table.select_for_owner(identity.id)
        finally:
            self.is_loading = False

        if not self._still_signed_in_as(identity.id):
            return

        entries = [JournalEntry.from_row(row) for row in rows]
        # Stable sort keeps the backend's order among entries of the same day
        entries.sort(key=lambda entry: entry.date, reverse=True)
        self._entries = entries
        self._owner_id = identity.id
        logger.info("Loaded %d entries for user %s", len(entries), identity.id)

    async def create(self, title: str, content: str, entry_date: date) -> str:
        identity = self._require_identity()
        self.is_loading = True
        try:
            row = await self.table.insert(
                JournalEntry.to_row(title, content, entry_date, owner_id=identity.id)
            )
        finally:
            self.is_loading = False

        entry = JournalEntry.from_row(row)
        if not self._still_signed_in_as(identity.id):
            logger.info("Created entry %s after its owner signed out; cache left alone", entry.id)
            return entry.id
        self._entries = [entry] + self._entries
        logger.info("Created entry %s", entry.id)
        return entry.id

    async def update(self, entry_id: str, title: str, content: str, entry_date: date) -> None:
        identity = self._require_identity()
        updated_at = utc_now()
        self.is_loading = True
        try:
            await self.table.update(
                entry_id,
                JournalEntry.to_row(title, content, entry_date, updated_at=updated_at),
            )
        finally:
            self.is_loading = False

        if not self._still_signed_in_as(identity.id):
            return
        # The row is not re-fetched; updated_at is the locally stamped value
        self._entries = [
            entry.model_copy(
                update={
                    "title": title,
                    "content": content,
                    "date": entry_date,
                    "updated_at": updated_at,
                }
            )
            if entry.id == entry_id
            else entry
            for entry in self._entries
        ]
        logger.info("Updated entry %s", entry_id)

    async def delete(self, entry_id: str) -> None:
        identity = self._require_identity()
        self.is_loading = True
        try:
            await self.table.delete(entry_id)
        finally:
            self.is_loading = False

        if not self._still_signed_in_as(identity.id):
            return
        self._entries = [entry for entry in self._entries if entry.id != entry_id]
        logger.info("Deleted entry %s", entry_id)

    def get(self, entry_id: str) -> Optional[JournalEntry]:
        return next((entry for entry in self._entries if entry.id == entry_id), None)
