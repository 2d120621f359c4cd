"""Tests for SessionStore: persisted conversations."""

import pytest

from aiva.assistant.sessions import DEFAULT_TITLE, SessionNotFoundError, SessionStore
from aiva.llm.messages import ChatMessage, ToolCall

pytestmark = pytest.mark.usefixtures("_no_turso")

USER = "user-1"


async def test_create_and_list(sessions: SessionStore) -> None:
    session_id = await sessions.create_session(USER)

    listed = await sessions.list_sessions(USER)
    assert [s["id"] for s in listed] == [session_id]
    assert listed[0]["title"] == DEFAULT_TITLE
    assert await sessions.list_sessions("someone-else") == []


async def test_require_session_enforces_ownership(sessions: SessionStore) -> None:
    session_id = await sessions.create_session(USER)
    assert (await sessions.require_session(USER, session_id))["id"] == session_id
    with pytest.raises(SessionNotFoundError):
        await sessions.require_session("intruder", session_id)


async def test_set_title(sessions: SessionStore) -> None:
    session_id = await sessions.create_session(USER)
    await sessions.set_title(session_id, "Planning the offsite")
    assert (await sessions.get_session(USER, session_id))["title"] == "Planning the offsite"


async def test_tool_exchange_round_trip(sessions: SessionStore) -> None:
    session_id = await sessions.create_session(USER)
    call = ToolCall(id="c1", name="list_tasks", arguments="{}")
    assistant = ChatMessage.assistant(None, [call])

    await sessions.append(session_id, ChatMessage.user("what's pending?"))
    await sessions.append_tool_exchange(
        session_id, assistant, [ChatMessage.tool_result("c1", "list_tasks", '{"count": 0}')]
    )
    await sessions.append(session_id, ChatMessage.assistant("Nothing pending."))

    history = await sessions.load_history(session_id, limit=20)

    assert [m.role for m in history] == ["user", "assistant", "tool", "assistant"]
    assert history[1].tool_calls[0].id == "c1"
    assert history[2].content == '{"count": 0}'
    assert await sessions.count_messages(session_id) == 4


async def test_history_window_starts_at_a_user_message(sessions: SessionStore) -> None:
    session_id = await sessions.create_session(USER)
    await sessions.append(session_id, ChatMessage.user("first"))
    await sessions.append_tool_exchange(
        session_id,
        ChatMessage.assistant(None, [ToolCall(id="c1", name="list_tasks")]),
        [ChatMessage.tool_result("c1", "list_tasks", "{}")],
    )
    await sessions.append(session_id, ChatMessage.assistant("done"))
    await sessions.append(session_id, ChatMessage.user("second"))

    history = await sessions.load_history(session_id, limit=3)
    assert [m.content for m in history] == ["second"]


async def test_delete_session(sessions: SessionStore) -> None:
    session_id = await sessions.create_session(USER)
    await sessions.append(session_id, ChatMessage.user("hi"))

    assert not await sessions.delete_session("intruder", session_id)
    assert await sessions.delete_session(USER, session_id)
    assert await sessions.get_session(USER, session_id) is None
    assert await sessions.count_messages(session_id) == 0
