"""
Daybook Backend: Session Persistence
=====================================

What:  Keeps the signed-in AuthSession across process restarts.
How:   The backend client saves the session after sign-in, token refresh
       and recovery, and removes it on sign-out. On startup the Session
       Store restores whatever was saved.
Who:   Used only by BackendClient.

Implementations:
    - MemorySessionStorage: process lifetime only (tests, SESSION_FILE="")
    - FileSessionStorage:   JSON file on disk, written with aiofiles

Persistence is best-effort: a session that cannot be written or read back
is logged and treated as absent. The signed-in state of the running
process never depends on the disk.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import aiofiles
from pydantic import ValidationError as PydanticValidationError

from daybook.models.session import AuthSession

logger = logging.getLogger(__name__)


class SessionStorage(ABC):
    """Contract for loading, saving and removing the persisted session."""

    @abstractmethod
    async def load(self) -> Optional[AuthSession]:
        """Return the persisted session, or None when nothing usable is stored."""
        ...

    @abstractmethod
    async def save(self, session: AuthSession) -> None:
        ...

    @abstractmethod
    async def clear(self) -> None:
        ...


class MemorySessionStorage(SessionStorage):
    def __init__(self, session: Optional[AuthSession] = None):
        self._session = session

    async def load(self) -> Optional[AuthSession]:
        return self._session

    async def save(self, session: AuthSession) -> None:
        self._session = session

    async def clear(self) -> None:
        self._session = None


class FileSessionStorage(SessionStorage):
    """
    Stores the session as a JSON document at `path`.

    The file holds live tokens, so it is created with owner-only
    permissions (0600) and its directory with 0700.
    """

    def __init__(self, path: str):
        self.path = Path(path).expanduser().resolve()

    async def load(self) -> Optional[AuthSession]:
        if not self.path.exists():
            return None
        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                raw = await f.read()
            return AuthSession.model_validate(json.loads(raw))
        except (OSError, ValueError, PydanticValidationError) as e:
            # ValueError covers malformed JSON
            logger.warning("Ignoring unreadable session file %s: %s", self.path, str(e))
            return None

    async def save(self, session: AuthSession) -> None:
        try:
            self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            # Created 0600 so the tokens are never readable by others, even briefly
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            async with aiofiles.open(fd, "w", encoding="utf-8") as f:
                # The creation mode does not apply to a file that already existed
                os.chmod(self.path, 0o600)
                await f.write(session.model_dump_json())
            logger.debug("Session persisted to %s", self.path)
        except OSError as e:
            logger.warning("Failed to persist session to %s: %s", self.path, str(e))

    async def clear(self) -> None:
        try:
            if self.path.exists():
                os.remove(self.path)
                logger.debug("Removed persisted session %s", self.path)
        except OSError as e:
            logger.warning("Failed to remove session file %s: %s", self.path, str(e))


def storage_from_settings(session_file: str) -> SessionStorage:
    """An empty path selects in-memory storage."""
    if not session_file:
        return MemorySessionStorage()
    return FileSessionStorage(session_file)
