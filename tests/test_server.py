"""Tests for the HTTP API."""

from datetime import date, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from aiohttp.test_utils import TestClient, TestServer

from aiva.actions.manager import PendingActionManager
from aiva.actions.models import CreateTaskDetails, TaskDraft
from aiva.llm.client import ModelResponse
from aiva.server import RETRY_MESSAGE, create_app
from aiva.tone.models import ToneProfile

TEST_KEY = "test-key-123"
USER = "user-1"
HEADERS = {"X-Api-Key": TEST_KEY, "X-User-Id": USER, "X-Timezone": "America/New_York"}

pytestmark = pytest.mark.usefixtures("_no_turso", "workspace", "actions", "sessions", "tone_store")


@pytest.fixture(autouse=True)
def _api_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("aiva.config.settings.api_key", TEST_KEY)


@pytest.fixture
async def client():
    client = TestClient(TestServer(create_app()))
    await client.start_server()
    yield client
    await client.close()


# -- Health and auth ---------------------------------------------------------


async def test_health_needs_no_auth(client: TestClient) -> None:
    resp = await client.get("/health")
    assert resp.status == 200
    assert (await resp.json())["status"] == "ok"


@pytest.mark.parametrize(
    "headers",
    [
        {},
        {"X-User-Id": USER},
        {"X-Api-Key": "wrong", "X-User-Id": USER},
        {"X-Api-Key": TEST_KEY},
    ],
)
async def test_rejects_unauthorized(client: TestClient, headers: dict) -> None:
    resp = await client.get("/api/sessions", headers=headers)
    assert resp.status == 401
    assert await resp.json() == {"error": "Unauthorized"}


async def test_empty_configured_key_rejects_everything(client, monkeypatch) -> None:
    monkeypatch.setattr("aiva.config.settings.api_key", "")
    resp = await client.get("/api/sessions", headers={"X-Api-Key": "", "X-User-Id": USER})
    assert resp.status == 401


# -- Orchestrate and sessions ------------------------------------------------


async def test_orchestrate_round_trip(client: TestClient) -> None:
    with (
        patch("aiva.assistant.orchestrator.call_model",
              AsyncMock(return_value=ModelResponse(content="All clear."))),
        patch("aiva.assistant.orchestrator.complete_text", AsyncMock(return_value="Check-in")),
    ):
        resp = await client.post("/api/orchestrate", json={"query": "anything new?"},
                                 headers=HEADERS)
        data = await resp.json()

    assert resp.status == 200
    assert data["textSummary"] == "All clear."
    assert data["toolsUsed"] == []

    sessions = await (await client.get("/api/sessions", headers=HEADERS)).json()
    assert [s["id"] for s in sessions["sessions"]] == [data["sessionId"]]

    resp = await client.delete(f"/api/sessions/{data['sessionId']}", headers=HEADERS)
    assert resp.status == 200


async def test_orchestrate_validation_error(client: TestClient) -> None:
    resp = await client.post("/api/orchestrate", json={"query": ""}, headers=HEADERS)
    assert resp.status == 400
    assert (await resp.json())["error"] == "Invalid request"


async def test_invalid_json_body(client: TestClient) -> None:
    resp = await client.post("/api/orchestrate", data="not json", headers=HEADERS)
    assert resp.status == 400


async def test_unknown_session_is_404(client: TestClient) -> None:
    resp = await client.post(
        "/api/orchestrate", json={"query": "hi", "sessionId": "nope"}, headers=HEADERS
    )
    assert resp.status == 404
    resp = await client.delete("/api/sessions/nope", headers=HEADERS)
    assert resp.status == 404


async def test_model_failure_is_generic_500(client: TestClient) -> None:
    with patch("aiva.assistant.orchestrator.call_model",
               AsyncMock(side_effect=RuntimeError("secret internal detail"))):
        resp = await client.post("/api/orchestrate", json={"query": "hi"}, headers=HEADERS)

    assert resp.status == 500
    assert await resp.json() == {"error": RETRY_MESSAGE}


# -- Pending actions ---------------------------------------------------------


async def test_pending_action_approval_flow(client: TestClient, workspace) -> None:
    action = await PendingActionManager().create_pending_action(
        USER,
        CreateTaskDetails(task=TaskDraft(title="Send invoice")),
        summary='Create task "Send invoice"',
        audit_reason="Task requested in conversation",
    )

    listed = await (await client.get("/api/pending-actions", headers=HEADERS)).json()
    assert listed[0]["id"] == action.id
    assert listed[0]["type"] == "create_task"
    assert listed[0]["details"]["task"]["title"] == "Send invoice"

    body = {"actionId": action.id, "decision": "approve"}
    first = await (await client.post("/api/pending-actions", json=body, headers=HEADERS)).json()
    second = await (await client.post("/api/pending-actions", json=body, headers=HEADERS)).json()

    assert first == {"success": True}
    assert second == {"success": False, "error": "Action already processed"}
    assert len(await workspace.list_tasks(USER)) == 1


async def test_bad_decision_rejected(client: TestClient) -> None:
    resp = await client.post(
        "/api/pending-actions", json={"actionId": "a1", "decision": "maybe"}, headers=HEADERS
    )
    assert resp.status == 400


# -- Nexus endpoints ---------------------------------------------------------


async def test_briefing(client: TestClient) -> None:
    resp = await client.get("/api/briefing?timezone=Europe/London", headers=HEADERS)
    data = await resp.json()
    assert resp.status == 200
    assert data["calendarDensity"] == {"totalMeetings": 0, "totalHours": 0.0, "freeHours": 8.0}


async def test_classify_without_messages_is_404(client: TestClient) -> None:
    resp = await client.post("/api/classify", json={"threadId": "missing"}, headers=HEADERS)
    assert resp.status == 404


async def test_timebox_stages_action(client: TestClient) -> None:
    resp = await client.post(
        "/api/timebox",
        json={
            "threadId": "t1",
            "taskTitle": "Review contract",
            "estimatedMinutes": 30,
            "deadline": (date.today() + timedelta(days=14)).isoformat(),
        },
        headers=HEADERS,
    )
    data = await resp.json()
    assert data["success"] is True
    assert data["pendingActionId"]


async def test_schedule_reply_refuses_foreign_thread(client: TestClient, workspace) -> None:
    thread_id = await workspace.add_thread(
        "someone-else", subject="Private", last_message_at="2026-03-01T12:00:00+00:00"
    )
    with patch("aiva.nexus.scheduling.complete_text", AsyncMock(return_value="Injected")):
        resp = await client.post(
            "/api/schedule-reply",
            json={"threadId": thread_id, "title": "Sync"},
            headers=HEADERS,
        )
    data = await resp.json()

    assert resp.status == 200
    assert data["success"] is False
    assert data["message"] == "Thread not found"
    assert await (await client.get("/api/pending-actions", headers=HEADERS)).json() == []
    assert await workspace.list_drafts(thread_id) == []


# -- Background jobs ---------------------------------------------------------


async def test_tone_endpoints_accept_and_detach(client: TestClient) -> None:
    with (
        patch("aiva.server.spawn_historical_sync") as sync,
        patch("aiva.server.spawn_delta_feedback") as feedback,
    ):
        r1 = await client.post("/api/tone/sync", json={"messages": ["a", "b"]}, headers=HEADERS)
        r2 = await client.post(
            "/api/tone/feedback",
            json={"originalDraft": "hi", "finalText": "hello"},
            headers=HEADERS,
        )

    assert (r1.status, r2.status) == (202, 202)
    sync.assert_called_once_with(USER, ["a", "b"])
    feedback.assert_called_once_with(USER, "hi", "hello")


async def test_shopify_backfill_accepts_and_detaches(client: TestClient) -> None:
    with patch("aiva.server.spawn_shopify_backfill", MagicMock()) as spawn:
        resp = await client.post(
            "/api/shopify/backfill",
            json={"shopDomain": "acme.myshopify.com", "accessToken": "shpat_x"},
            headers=HEADERS,
        )
    assert resp.status == 202
    spawn.assert_called_once_with(USER, "acme.myshopify.com", "shpat_x")


@pytest.mark.parametrize(
    "domain", ["evil.example.com", "acme.myshopify.com.evil.com", "acme.myshopify.com/x", ".myshopify.com"]
)
async def test_shopify_backfill_rejects_other_hosts(client: TestClient, domain: str) -> None:
    with patch("aiva.server.spawn_shopify_backfill", MagicMock()) as spawn:
        resp = await client.post(
            "/api/shopify/backfill",
            json={"shopDomain": domain, "accessToken": "shpat_x"},
            headers=HEADERS,
        )
    assert resp.status == 400
    spawn.assert_not_called()


async def test_rewrite_draft_streams_with_tone_hint(client: TestClient, tone_store) -> None:
    await tone_store.save_profile(USER, ToneProfile(formality=8, vocabulary_quirks=["Cheers"]))
    seen = {}

    async def fake_stream(messages, **kwargs):
        seen["prompt"] = messages[-1].content
        for chunk in ("Hello ", "Dana."):
            yield chunk

    with patch("aiva.server.stream_text", fake_stream):
        resp = await client.post(
            "/api/rewrite-draft", json={"draft": "hey dana", "tone": "Professional"},
            headers=HEADERS,
        )
        text = await resp.text()

    assert resp.status == 200
    assert text == "Hello Dana."
    assert "formality 8.0" in seen["prompt"]
    assert "Cheers" in seen["prompt"]
