"""
Session store for the Unisphere client.

Holds the opaque bearer token between login and logout. The token is the
only client state that survives a restart; where it is kept is up to the
backend (in memory for tests, SQLite for the CLI).
"""

import logging
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

from .errors import Unauthenticated

logger = logging.getLogger("unisphere.session")

T = TypeVar("T")


# =============================================================================
# Token Backends
# =============================================================================

class TokenBackend(ABC):
    """Where the session token lives between runs."""

    @abstractmethod
    def load(self) -> Optional[str]:
        ...

    @abstractmethod
    def save(self, token: str) -> None:
        ...

    @abstractmethod
    def delete(self) -> None:
        ...


class MemoryTokenBackend(TokenBackend):
    """Keeps the token for the lifetime of the process only."""

    def __init__(self, token: Optional[str] = None):
        self._token = token

    def load(self) -> Optional[str]:
        return self._token

    def save(self, token: str) -> None:
        self._token = token

    def delete(self) -> None:
        self._token = None


class SQLiteTokenBackend(TokenBackend):
    """Single-row SQLite table holding the token across restarts."""

    SCHEMA = """
    CREATE TABLE IF NOT EXISTS session_token (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        token TEXT NOT NULL,
        saved_at TEXT NOT NULL
    );
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        with self._get_connection() as conn:
            conn.executescript(self.SCHEMA)
            conn.commit()

    @contextmanager
    def _get_connection(self):
        """Short-lived connection; the file is shared between CLI runs."""
        conn = sqlite3.connect(str(self.db_path), timeout=5.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def load(self) -> Optional[str]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT token FROM session_token WHERE id = 1").fetchone()
            return row["token"] if row else None

    def save(self, token: str) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO session_token (id, token, saved_at)
                VALUES (1, ?, ?)
                """,
                (token, datetime.now(timezone.utc).isoformat()),
            )
            conn.commit()

    def delete(self) -> None:
        with self._get_connection() as conn:
            conn.execute("DELETE FROM session_token WHERE id = 1")
            conn.commit()


# =============================================================================
# Session Store
# =============================================================================

class SessionStore:
    """
    Current authentication token.

    No expiry is tracked here: an expired token is discovered when the next
    authenticated call fails, at which point ``authorized`` clears it.
    """

    def __init__(self, backend: Optional[TokenBackend] = None):
        self.backend = backend or MemoryTokenBackend()
        self._token: Optional[str] = None
        self._loaded = False

    async def get_token(self) -> Optional[str]:
        if not self._loaded:
            self._token = self.backend.load()
            self._loaded = True
        return self._token

    async def set_token(self, token: str) -> None:
        if not token:
            raise ValueError("Session token must be a non-empty string")
        self.backend.save(token)
        self._token = token
        self._loaded = True
        logger.info("Session started")

    async def clear(self) -> None:
        """Forget the token. Safe to call when already logged out."""
        had_token = await self.get_token() is not None
        self.backend.delete()
        self._token = None
        self._loaded = True
        if had_token:
            logger.info("Session cleared")

    async def is_authenticated(self) -> bool:
        return await self.get_token() is not None

    async def require_token(self) -> str:
        token = await self.get_token()
        if token is None:
            raise Unauthenticated("No session token available")
        return token

    async def authorized(self, call: Callable[[str], Awaitable[T]]) -> T:
        """
        Run ``call(token)`` under the current session.

        Fails with ``Unauthenticated`` before ``call`` is invoked when there
        is no token, and clears the session if the server rejects it. A
        rejection of a token that has since been replaced leaves the new
        session alone.
        """
        token = await self.require_token()
        try:
            return await call(token)
        except Unauthenticated:
            if self._token == token:
                logger.warning("Server rejected session token; clearing session")
                await self.clear()
            else:
                logger.debug("Ignoring rejection of a superseded session token")
            raise
