"""Shared test fixtures."""

from pathlib import Path

import pytest

from aiva.actions.store import PendingActionStore
from aiva.assistant.sessions import SessionStore
from aiva.context import RequestContext
from aiva.tone.store import ToneStore
from aiva.workspace.store import WorkspaceStore

USER_ID = "user-1"


@pytest.fixture(autouse=False)
def _no_turso(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure tests use local file, not remote Turso."""
    monkeypatch.setattr("aiva.config.settings.turso_database_url", "")


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture
def workspace(db_path: Path, _no_turso):
    """WorkspaceStore on a temp database, installed as the singleton."""
    WorkspaceStore._reset()
    store = WorkspaceStore(db_path=db_path)
    WorkspaceStore._instance = store
    yield store
    WorkspaceStore._reset()


@pytest.fixture
def actions(db_path: Path, _no_turso):
    """PendingActionStore on a temp database, installed as the singleton."""
    PendingActionStore._reset()
    store = PendingActionStore(db_path=db_path)
    PendingActionStore._instance = store
    yield store
    PendingActionStore._reset()


@pytest.fixture
def tone_store(db_path: Path, _no_turso):
    """ToneStore on a temp database, installed as the singleton."""
    ToneStore._reset()
    store = ToneStore(db_path=db_path)
    ToneStore._instance = store
    yield store
    ToneStore._reset()


@pytest.fixture
def sessions(db_path: Path, _no_turso):
    """SessionStore on a temp database, installed as the singleton."""
    SessionStore._reset()
    store = SessionStore(db_path=db_path)
    SessionStore._instance = store
    yield store
    SessionStore._reset()


@pytest.fixture
def context() -> RequestContext:
    return RequestContext(user_id=USER_ID, timezone="America/New_York", workspace_id="ws-1")
