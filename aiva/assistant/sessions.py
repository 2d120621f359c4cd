"""SessionStore: persisted conversation sessions and their messages.

Rows go through ``to_row_fields`` / ``from_rows`` only; no other code
reshapes persisted messages.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any

from aiva.db import connect, row_to_dict
from aiva.llm.messages import from_rows, to_row_fields
from aiva.timeutil import utc_now_iso

if TYPE_CHECKING:
    from pathlib import Path

    from aiva.llm.messages import ChatMessage

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New conversation"

_CREATE_SESSIONS = """
CREATE TABLE IF NOT EXISTS chat_sessions (
    id         TEXT PRIMARY KEY,
    user_id    TEXT NOT NULL,
    title      TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
)
"""

_CREATE_MESSAGES = """
CREATE TABLE IF NOT EXISTS chat_messages (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id   TEXT NOT NULL,
    role         TEXT NOT NULL,
    content      TEXT,
    tool_calls   TEXT,
    tool_results TEXT,
    created_at   TEXT NOT NULL
)
"""

_CREATE_INDEX = """
CREATE INDEX IF NOT EXISTS idx_chat_messages_session ON chat_messages(session_id, id)
"""

_SESSION_COLUMNS = ("id", "title", "created_at", "updated_at")
_ROW_COLUMNS = ("role", "content", "tool_calls", "tool_results")

_INSERT_MESSAGE = """
INSERT INTO chat_messages (session_id, role, content, tool_calls, tool_results, created_at)
VALUES (?, ?, ?, ?, ?, ?)
"""


class SessionNotFoundError(LookupError):
    """The session does not exist or belongs to another user."""


class SessionStore:
    """Persists chat sessions in SQLite / Turso.

    Singleton accessed via ``SessionStore.get()``.  Pass an explicit
    *db_path* for test isolation.
    """

    _instance: SessionStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path
        self._initialised = False

    @classmethod
    def get(cls) -> SessionStore:
        """Return the shared SessionStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    async def _connect(self):  # noqa: ANN202
        db = await connect(self._db_path)
        if not self._initialised:
            await db.apply_schema((_CREATE_SESSIONS, _CREATE_MESSAGES, _CREATE_INDEX))
            self._initialised = True
        return db

    # -- Sessions --------------------------------------------------------------

    async def create_session(self, user_id: str, title: str = DEFAULT_TITLE) -> str:
        session_id = uuid.uuid4().hex
        now = utc_now_iso()
        db = await self._connect()
        try:
            await db.execute(
                "INSERT INTO chat_sessions (id, user_id, title, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (session_id, user_id, title, now, now),
            )
            await db.commit()
            logger.info("Created session %s for %s", session_id, user_id)
            return session_id
        finally:
            await db.close()

    async def get_session(self, user_id: str, session_id: str) -> dict[str, Any] | None:
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {', '.join(_SESSION_COLUMNS)} FROM chat_sessions "
                "WHERE id = ? AND user_id = ?",
                (session_id, user_id),
            )
            row = await cursor.fetchone()
            return row_to_dict(_SESSION_COLUMNS, row) if row else None
        finally:
            await db.close()

    async def require_session(self, user_id: str, session_id: str) -> dict[str, Any]:
        """Return the session or raise ``SessionNotFoundError``."""
        session = await self.get_session(user_id, session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def list_sessions(self, user_id: str, limit: int = 50) -> list[dict[str, Any]]:
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {', '.join(_SESSION_COLUMNS)} FROM chat_sessions "
                "WHERE user_id = ? ORDER BY updated_at DESC LIMIT ?",
                (user_id, limit),
            )
            rows = await cursor.fetchall()
            return [row_to_dict(_SESSION_COLUMNS, row) for row in rows]
        finally:
            await db.close()

    async def set_title(self, session_id: str, title: str) -> None:
        db = await self._connect()
        try:
            await db.execute(
                "UPDATE chat_sessions SET title = ? WHERE id = ?", (title, session_id)
            )
            await db.commit()
        finally:
            await db.close()

    async def delete_session(self, user_id: str, session_id: str) -> bool:
        """Delete a session and its messages. Returns False if not owned/found."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                "DELETE FROM chat_sessions WHERE id = ? AND user_id = ?",
                (session_id, user_id),
            )
            if cursor.rowcount == 0:
                return False
            await db.execute("DELETE FROM chat_messages WHERE session_id = ?", (session_id,))
            await db.commit()
            logger.info("Deleted session %s", session_id)
            return True
        finally:
            await db.close()

    # -- Messages --------------------------------------------------------------

    async def append(self, session_id: str, message: ChatMessage) -> None:
        """Persist one message and touch the session."""
        await self._insert(session_id, [to_row_fields(message)])

    async def append_tool_exchange(
        self,
        session_id: str,
        assistant_message: ChatMessage,
        tool_results: list[ChatMessage],
    ) -> None:
        """Persist a tool-call message and its batch of results together."""
        await self._insert(
            session_id,
            [
                to_row_fields(assistant_message),
                to_row_fields(assistant_message, tool_results=tool_results),
            ],
        )

    async def _insert(self, session_id: str, rows: list[dict[str, Any]]) -> None:
        now = utc_now_iso()
        db = await self._connect()
        try:
            for fields in rows:
                await db.execute(
                    _INSERT_MESSAGE,
                    (
                        session_id,
                        fields["role"],
                        fields["content"],
                        fields["tool_calls"],
                        fields["tool_results"],
                        now,
                    ),
                )
            await db.execute(
                "UPDATE chat_sessions SET updated_at = ? WHERE id = ?", (now, session_id)
            )
            await db.commit()
        finally:
            await db.close()

    async def load_history(self, session_id: str, limit: int) -> list[ChatMessage]:
        """Most recent *limit* rows, oldest first, as canonical messages."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {', '.join(_ROW_COLUMNS)} FROM chat_messages "
                "WHERE session_id = ? ORDER BY id DESC LIMIT ?",
                (session_id, limit),
            )
            rows = await cursor.fetchall()
        finally:
            await db.close()
        return from_rows([row_to_dict(_ROW_COLUMNS, row) for row in reversed(rows)])

    async def count_messages(self, session_id: str) -> int:
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM chat_messages WHERE session_id = ?", (session_id,)
            )
            row = await cursor.fetchone()
            return int(row[0]) if row else 0
        finally:
            await db.close()
