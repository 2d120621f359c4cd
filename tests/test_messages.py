"""Tests for the canonical message schema and its adapters."""

import json

from aiva.llm.client import to_anthropic_messages
from aiva.llm.messages import ChatMessage, ToolCall, from_rows, to_row_fields


def _call(call_id: str = "c1", name: str = "list_tasks", arguments: str = "{}") -> ToolCall:
    return ToolCall(id=call_id, name=name, arguments=arguments)


# -- ToolCall.parse_arguments --------------------------------------------------


def test_parse_arguments_decodes_object() -> None:
    assert _call(arguments='{"status": "pending"}').parse_arguments() == {"status": "pending"}


def test_malformed_arguments_default_to_empty() -> None:
    assert _call(arguments="{not json").parse_arguments() == {}


def test_non_object_arguments_default_to_empty() -> None:
    assert _call(arguments="[1, 2]").parse_arguments() == {}


# -- Persistence adapter -------------------------------------------------------


def test_tool_results_batch_into_one_row() -> None:
    assistant = ChatMessage.assistant(None, [_call("c1"), _call("c2", "search_inbox")])
    results = [
        ChatMessage.tool_result("c1", "list_tasks", '{"count": 0}'),
        ChatMessage.tool_result("c2", "search_inbox", '{"count": 2}'),
    ]
    row = to_row_fields(assistant, tool_results=results)

    assert row["role"] == "tool"
    batch = json.loads(row["tool_results"])
    assert [item["tool_call_id"] for item in batch] == ["c1", "c2"]


def test_rows_round_trip_to_canonical_messages() -> None:
    assistant = ChatMessage.assistant("Looking", [_call("c1")])
    results = [ChatMessage.tool_result("c1", "list_tasks", "{}")]
    rows = [
        to_row_fields(ChatMessage.user("what's on my list?")),
        to_row_fields(assistant),
        to_row_fields(assistant, tool_results=results),
        to_row_fields(ChatMessage.assistant("Nothing yet.")),
    ]

    messages = from_rows(rows)

    assert [m.role for m in messages] == ["user", "assistant", "tool", "assistant"]
    assert messages[1].tool_calls[0].id == "c1"
    assert messages[2].tool_call_id == "c1"


def test_from_rows_drops_orphaned_head() -> None:
    results = [ChatMessage.tool_result("c0", "list_tasks", "{}")]
    rows = [
        to_row_fields(ChatMessage.assistant(None), tool_results=results),
        to_row_fields(ChatMessage.assistant("earlier answer")),
        to_row_fields(ChatMessage.user("next question")),
    ]
    messages = from_rows(rows)
    assert [m.role for m in messages] == ["user"]


# -- Anthropic adapter ---------------------------------------------------------


def test_system_messages_lift_into_system_prompt() -> None:
    system, api = to_anthropic_messages(
        [ChatMessage.system("policy"), ChatMessage.user("hi")]
    )
    assert system == "policy"
    assert api == [{"role": "user", "content": "hi"}]


def test_tool_calls_become_tool_use_blocks() -> None:
    _, api = to_anthropic_messages([
        ChatMessage.user("tasks?"),
        ChatMessage.assistant("Checking", [_call("c1", arguments='{"status": "pending"}')]),
    ])
    blocks = api[1]["content"]
    assert blocks[0] == {"type": "text", "text": "Checking"}
    assert blocks[1] == {
        "type": "tool_use",
        "id": "c1",
        "name": "list_tasks",
        "input": {"status": "pending"},
    }


def test_consecutive_tool_results_fold_into_one_turn() -> None:
    _, api = to_anthropic_messages([
        ChatMessage.user("both"),
        ChatMessage.assistant(None, [_call("c1"), _call("c2")]),
        ChatMessage.tool_result("c1", "list_tasks", "a"),
        ChatMessage.tool_result("c2", "list_tasks", "b"),
    ])
    assert len(api) == 3
    assert api[2]["role"] == "user"
    assert [b["tool_use_id"] for b in api[2]["content"]] == ["c1", "c2"]


def test_back_to_back_user_turns_merge() -> None:
    _, api = to_anthropic_messages([ChatMessage.user("one"), ChatMessage.user("two")])
    assert api == [{"role": "user", "content": "one\n\ntwo"}]
