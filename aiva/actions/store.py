"""PendingActionStore: staged actions and the audit log."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from aiva.actions.models import ActionStatus, PendingAction
from aiva.db import connect, dumps, loads
from aiva.timeutil import utc_now_iso

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_ACTIONS = """
CREATE TABLE IF NOT EXISTS pending_actions (
    id               TEXT PRIMARY KEY,
    user_id          TEXT NOT NULL,
    type             TEXT NOT NULL,
    status           TEXT NOT NULL DEFAULT 'pending',
    summary          TEXT NOT NULL,
    details          TEXT NOT NULL,
    source_thread_id TEXT,
    audit_reason     TEXT NOT NULL DEFAULT '',
    created_at       TEXT NOT NULL,
    executed_at      TEXT
)
"""

_CREATE_LOGS = """
CREATE TABLE IF NOT EXISTS action_logs (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id          TEXT NOT NULL,
    actor            TEXT NOT NULL DEFAULT 'aiva',
    action_type      TEXT NOT NULL,
    summary          TEXT NOT NULL,
    details          TEXT NOT NULL,
    source_thread_id TEXT,
    sent_at          TEXT NOT NULL
)
"""

_COLUMNS = (
    "id, user_id, type, status, summary, details, source_thread_id, "
    "audit_reason, created_at, executed_at"
)


def _from_row(row: tuple) -> PendingAction:
    return PendingAction(
        id=row[0],
        user_id=row[1],
        status=row[3],
        summary=row[4],
        details=loads(row[5], default={}),
        source_thread_id=row[6],
        audit_reason=row[7],
        created_at=row[8],
        executed_at=row[9],
    )


class PendingActionStore:
    """Persists pending actions and action logs in SQLite / Turso.

    Singleton accessed via ``PendingActionStore.get()``.  Pass an explicit
    *db_path* for test isolation.
    """

    _instance: PendingActionStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path
        self._initialised = False

    @classmethod
    def get(cls) -> PendingActionStore:
        """Return the shared PendingActionStore instance."""
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
            await db.apply_schema((_CREATE_ACTIONS, _CREATE_LOGS))
            self._initialised = True
        return db

    # -- Actions ---------------------------------------------------------------

    async def insert(self, action: PendingAction) -> None:
        db = await self._connect()
        try:
            await db.execute(
                f"INSERT INTO pending_actions ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    action.id,
                    action.user_id,
                    str(action.type),
                    str(action.status),
                    action.summary,
                    dumps(action.details.model_dump(mode="json")),
                    action.source_thread_id,
                    action.audit_reason,
                    action.created_at,
                    action.executed_at,
                ),
            )
            await db.commit()
        finally:
            await db.close()

    async def get_for_user(self, user_id: str, action_id: str) -> PendingAction | None:
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM pending_actions WHERE id = ? AND user_id = ?",
                (action_id, user_id),
            )
            row = await cursor.fetchone()
            return _from_row(row) if row else None
        finally:
            await db.close()

    async def list_pending(self, user_id: str, limit: int = 20) -> list[PendingAction]:
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM pending_actions "
                "WHERE user_id = ? AND status = 'pending' "
                "ORDER BY created_at DESC LIMIT ?",
                (user_id, limit),
            )
            rows = await cursor.fetchall()
            return [_from_row(row) for row in rows]
        finally:
            await db.close()

    async def transition(
        self,
        user_id: str,
        action_id: str,
        status: ActionStatus,
        *,
        executed_at: str | None = None,
    ) -> bool:
        """Move a *pending* action to *status*.

        The status check and the write are one statement, so of two
        concurrent callers exactly one sees True.
        """
        db = await self._connect()
        try:
            cursor = await db.execute(
                """
                UPDATE pending_actions SET status = ?, executed_at = ?
                WHERE id = ? AND user_id = ? AND status = 'pending'
                """,
                (str(status), executed_at or utc_now_iso(), action_id, user_id),
            )
            await db.commit()
            return cursor.rowcount > 0
        finally:
            await db.close()

    async def release(self, user_id: str, action_id: str) -> None:
        """Return a claimed action to ``pending`` after a failed execution."""
        db = await self._connect()
        try:
            await db.execute(
                """
                UPDATE pending_actions SET status = 'pending', executed_at = NULL
                WHERE id = ? AND user_id = ? AND status = 'approved'
                """,
                (action_id, user_id),
            )
            await db.commit()
        finally:
            await db.close()

    # -- Audit log -------------------------------------------------------------

    async def add_log(
        self,
        user_id: str,
        action_type: str,
        summary: str,
        details: dict[str, Any],
        source_thread_id: str | None = None,
        actor: str = "aiva",
    ) -> None:
        db = await self._connect()
        try:
            await db.execute(
                """
                INSERT INTO action_logs
                    (user_id, actor, action_type, summary, details, source_thread_id, sent_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (user_id, actor, action_type, summary, dumps(details), source_thread_id,
                 utc_now_iso()),
            )
            await db.commit()
        finally:
            await db.close()

    async def list_logs(self, user_id: str, limit: int = 50) -> list[dict[str, Any]]:
        columns = ("actor", "action_type", "summary", "details", "source_thread_id", "sent_at")
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {', '.join(columns)} FROM action_logs "
                "WHERE user_id = ? ORDER BY id DESC LIMIT ?",
                (user_id, limit),
            )
            rows = await cursor.fetchall()
            logs = [dict(zip(columns, row, strict=False)) for row in rows]
            for entry in logs:
                entry["details"] = loads(entry["details"], default={})
            return logs
        finally:
            await db.close()

    async def count_logs_since(self, user_id: str, since: str) -> int:
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM action_logs WHERE user_id = ? AND sent_at >= ?",
                (user_id, since),
            )
            row = await cursor.fetchone()
            return int(row[0]) if row else 0
        finally:
            await db.close()
