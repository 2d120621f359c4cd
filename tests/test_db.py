"""Tests for the libsql connection layer."""

from pathlib import Path

import pytest

from aiva.db import Connection, connect, dumps, loads, row_to_dict

pytestmark = pytest.mark.usefixtures("_no_turso")


class TestConnect:
    async def test_explicit_path_opens_local_file(self, tmp_path: Path):
        db_path = tmp_path / "nested" / "dir" / "test.db"
        conn = await connect(db_path)
        assert isinstance(conn, Connection)
        assert db_path.parent.exists()
        await conn.close()

    async def test_default_path_from_settings(self, tmp_path: Path, monkeypatch):
        monkeypatch.setattr("aiva.config.settings.database_path", tmp_path / "app.db")
        conn = await connect()
        await conn.close()
        assert (tmp_path / "app.db").exists()


class TestConnection:
    async def test_execute_and_fetch(self, tmp_path: Path):
        conn = await connect(tmp_path / "test.db")
        await conn.apply_schema(["CREATE TABLE IF NOT EXISTS t (id INTEGER PRIMARY KEY, name TEXT)"])
        await conn.execute("INSERT INTO t (name) VALUES (?)", ("alice",))
        await conn.commit()

        cursor = await conn.execute("SELECT name FROM t")
        assert await cursor.fetchall() == [("alice",)]

        cursor = await conn.execute("SELECT name FROM t WHERE id = 999")
        assert await cursor.fetchone() is None
        await conn.close()

    async def test_apply_schema_is_repeatable(self, tmp_path: Path):
        schema = ("CREATE TABLE IF NOT EXISTS t (id INTEGER PRIMARY KEY)",)
        for _ in range(2):
            conn = await connect(tmp_path / "test.db")
            await conn.apply_schema(schema)
            await conn.close()

    async def test_conditional_update_rowcount(self, tmp_path: Path):
        conn = await connect(tmp_path / "test.db")
        await conn.execute("CREATE TABLE t (id INTEGER PRIMARY KEY, status TEXT)")
        await conn.execute("INSERT INTO t (status) VALUES ('pending')")
        await conn.commit()

        claim = "UPDATE t SET status = 'approved' WHERE id = 1 AND status = 'pending'"
        first = await conn.execute(claim)
        second = await conn.execute(claim)
        await conn.commit()
        assert first.rowcount == 1
        assert second.rowcount == 0
        await conn.close()


class TestHelpers:
    def test_row_to_dict(self):
        assert row_to_dict(("a", "b"), (1, "x")) == {"a": 1, "b": "x"}

    def test_json_columns(self):
        assert loads(dumps(["x", 1])) == ["x", 1]

    def test_loads_tolerates_null_and_garbage(self):
        assert loads(None, default=[]) == []
        assert loads("", default={}) == {}
        assert loads("{not json", default=[]) == []
