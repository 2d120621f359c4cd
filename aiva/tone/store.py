"""ToneStore: per-user tone profiles and the exemplar corpus."""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from aiva.db import connect, dumps, loads
from aiva.timeutil import utc_now_iso
from aiva.tone.models import Exemplar, ToneProfile

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_PROFILES = """
CREATE TABLE IF NOT EXISTS tone_profiles (
    user_id           TEXT PRIMARY KEY,
    formality         REAL NOT NULL,
    length            REAL NOT NULL,
    warmth            REAL NOT NULL,
    certainty         REAL NOT NULL,
    vocabulary_quirks TEXT NOT NULL DEFAULT '[]',
    synced_at         TEXT,
    updated_at        TEXT
)
"""

_CREATE_EXEMPLARS = """
CREATE TABLE IF NOT EXISTS exemplars (
    id         TEXT PRIMARY KEY,
    user_id    TEXT NOT NULL,
    content    TEXT NOT NULL,
    embedding  TEXT NOT NULL,
    category   TEXT NOT NULL DEFAULT 'general',
    channel    TEXT NOT NULL DEFAULT 'email',
    created_at TEXT NOT NULL
)
"""


class ToneStore:
    """Persists tone profiles and exemplars in SQLite / Turso.

    Singleton accessed via ``ToneStore.get()``.  Pass an explicit
    *db_path* for test isolation.
    """

    _instance: ToneStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path
        self._initialised = False

    @classmethod
    def get(cls) -> ToneStore:
        """Return the shared ToneStore instance."""
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
            await db.apply_schema((_CREATE_PROFILES, _CREATE_EXEMPLARS))
            self._initialised = True
        return db

    async def get_profile(self, user_id: str) -> ToneProfile | None:
        db = await self._connect()
        try:
            cursor = await db.execute(
                """
                SELECT formality, length, warmth, certainty, vocabulary_quirks,
                       synced_at, updated_at
                FROM tone_profiles WHERE user_id = ?
                """,
                (user_id,),
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            return ToneProfile(
                formality=row[0],
                length=row[1],
                warmth=row[2],
                certainty=row[3],
                vocabulary_quirks=loads(row[4], default=[]),
                synced_at=row[5],
                updated_at=row[6],
            )
        finally:
            await db.close()

    async def save_profile(self, user_id: str, profile: ToneProfile) -> None:
        """Insert or replace the user's profile."""
        db = await self._connect()
        try:
            await db.execute(
                """
                INSERT OR REPLACE INTO tone_profiles
                    (user_id, formality, length, warmth, certainty, vocabulary_quirks,
                     synced_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    profile.formality,
                    profile.length,
                    profile.warmth,
                    profile.certainty,
                    dumps(profile.vocabulary_quirks),
                    profile.synced_at,
                    profile.updated_at,
                ),
            )
            await db.commit()
        finally:
            await db.close()

    async def add_exemplar(self, user_id: str, exemplar: Exemplar) -> str:
        exemplar_id = uuid.uuid4().hex
        db = await self._connect()
        try:
            await db.execute(
                """
                INSERT INTO exemplars (id, user_id, content, embedding, category, channel, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    exemplar_id,
                    user_id,
                    exemplar.content,
                    dumps(exemplar.embedding),
                    exemplar.category,
                    exemplar.channel,
                    utc_now_iso(),
                ),
            )
            await db.commit()
            return exemplar_id
        finally:
            await db.close()

    async def list_exemplars(self, user_id: str, category: str | None = None) -> list[Exemplar]:
        sql = "SELECT content, embedding, category, channel FROM exemplars WHERE user_id = ?"
        params: list[str] = [user_id]
        if category:
            sql += " AND category = ?"
            params.append(category)
        sql += " ORDER BY created_at"

        db = await self._connect()
        try:
            cursor = await db.execute(sql, tuple(params))
            rows = await cursor.fetchall()
            return [
                Exemplar(
                    content=row[0],
                    embedding=loads(row[1], default=[]),
                    category=row[2],
                    channel=row[3],
                )
                for row in rows
            ]
        finally:
            await db.close()
