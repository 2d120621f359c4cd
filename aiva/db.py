"""libsql access shared by every store.

The ``libsql`` driver is synchronous; each call is pushed onto a worker
thread with ``asyncio.to_thread()``. A store that passes an explicit path
(tests) always gets a local file. Otherwise ``TURSO_DATABASE_URL`` selects
the hosted database and ``database_path`` the local one.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any

import libsql

from aiva.config import settings

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from pathlib import Path

logger = logging.getLogger(__name__)

_LOCAL_PRAGMAS = ("PRAGMA journal_mode=WAL", "PRAGMA busy_timeout=5000")


class Cursor:
    """Result of one statement. ``rowcount`` reports rows changed by a write."""

    def __init__(self, raw: Any) -> None:
        self._raw = raw

    @property
    def rowcount(self) -> int:
        return self._raw.rowcount

    async def fetchone(self) -> tuple | None:
        return await asyncio.to_thread(self._raw.fetchone)

    async def fetchall(self) -> list[tuple]:
        return await asyncio.to_thread(self._raw.fetchall)


class Connection:
    def __init__(self, raw: Any) -> None:
        self._raw = raw

    async def execute(self, sql: str, params: tuple = ()) -> Cursor:
        return Cursor(await asyncio.to_thread(self._raw.execute, sql, params))

    async def apply_schema(self, statements: Iterable[str]) -> None:
        """Run idempotent DDL statements and commit them together."""
        for statement in statements:
            await self.execute(statement)
        await self.commit()

    async def commit(self) -> None:
        await asyncio.to_thread(self._raw.commit)

    async def close(self) -> None:
        await asyncio.to_thread(self._raw.close)


def _open_file(path: Path) -> Any:
    path.parent.mkdir(parents=True, exist_ok=True)
    raw = libsql.connect(str(path))
    for pragma in _LOCAL_PRAGMAS:
        raw.execute(pragma)
    return raw


def _open_turso() -> Any:
    return libsql.connect(
        database=settings.turso_database_url, auth_token=settings.turso_auth_token
    )


async def connect(path: Path | None = None) -> Connection:
    """Open a connection for one unit of work. Callers close it."""
    if path is not None:
        return Connection(await asyncio.to_thread(_open_file, path))
    if settings.turso_database_url:
        return Connection(await asyncio.to_thread(_open_turso))
    return Connection(await asyncio.to_thread(_open_file, settings.database_path))


# -- Row helpers -----------------------------------------------------------------


def row_to_dict(columns: Sequence[str], row: tuple) -> dict[str, Any]:
    """Zip a SELECT column list with a result tuple."""
    return dict(zip(columns, row, strict=False))


def dumps(value: Any) -> str:
    """Serialize a JSON column value."""
    return json.dumps(value, default=str)


def loads(value: str | None, default: Any = None) -> Any:
    """Deserialize a JSON column value, tolerating NULL."""
    if value is None or value == "":
        return default
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        logger.warning("Unreadable JSON column value: %.60r", value)
        return default
