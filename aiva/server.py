"""Async HTTP API for the assistant.

Uses aiohttp's AppRunner/TCPSite for non-blocking start/stop. Caller
identity comes from an upstream gateway: every ``/api`` request carries the
shared ``X-Api-Key`` and the authenticated ``X-User-Id``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from aiohttp import web
from pydantic import BaseModel, Field, ValidationError

from aiva.actions.manager import PendingActionManager
from aiva.actions.store import PendingActionStore
from aiva.assistant.models import OrchestrateRequest
from aiva.assistant.orchestrator import Orchestrator
from aiva.assistant.sessions import SessionNotFoundError, SessionStore
from aiva.config import settings
from aiva.context import RequestContext
from aiva.llm.client import stream_text
from aiva.llm.messages import ChatMessage
from aiva.nexus.briefing import generate_daily_briefing
from aiva.nexus.classifier import classify_email_intent, is_actionable
from aiva.nexus.models import CamelModel, dump
from aiva.nexus.scheduling import SchedulingEngine
from aiva.tone.engine import spawn_delta_feedback, spawn_historical_sync
from aiva.tone.store import ToneStore
from aiva.workers.shopify_backfill import SHOP_DOMAIN_PATTERN, spawn_shopify_backfill
from aiva.workspace.store import WorkspaceStore

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

RETRY_MESSAGE = "Something went wrong while handling your request. Please try again."

_CONTEXT_KEY = "context"

_REWRITE_SYSTEM = (
    "You rewrite email drafts. Keep the meaning, names, dates and commitments "
    "exactly as written. Change only the tone. Reply with the rewritten draft only."
)


# -- Request bodies ------------------------------------------------------------


class DecisionBody(CamelModel):
    action_id: str = Field(min_length=1)
    decision: str = Field(pattern="^(approve|reject)$")


class ThreadBody(CamelModel):
    thread_id: str = Field(min_length=1)


class ScheduleReplyBody(CamelModel):
    thread_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    duration_minutes: int | None = Field(default=None, gt=0)
    attendee_emails: list[str] = Field(default_factory=list)
    date_from: str | None = None
    date_to: str | None = None
    format: str | None = None
    location: str | None = None
    user_name: str = ""


class TimeboxBody(CamelModel):
    thread_id: str = Field(min_length=1)
    task_title: str = Field(min_length=1)
    estimated_minutes: int | None = Field(default=None, gt=0)
    deadline: str | None = None


class ToneSyncBody(CamelModel):
    messages: list[str]


class ToneFeedbackBody(CamelModel):
    original_draft: str
    final_text: str


class RewriteDraftBody(CamelModel):
    draft: str = Field(min_length=1)
    tone: str = Field(min_length=1)


class ShopifyBackfillBody(CamelModel):
    shop_domain: str = Field(pattern=SHOP_DOMAIN_PATTERN)
    access_token: str = Field(min_length=1)


# -- Middleware ----------------------------------------------------------------


@web.middleware
async def auth_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
    """Reject ``/api`` requests without a valid key and user id."""
    if not request.path.startswith("/api/"):
        return await handler(request)

    key = request.headers.get("X-Api-Key", "")
    user_id = request.headers.get("X-User-Id", "").strip()
    if not settings.api_key or key != settings.api_key or not user_id:
        logger.warning("API request rejected: unauthorized (path=%s)", request.path)
        return web.json_response({"error": "Unauthorized"}, status=401)

    request[_CONTEXT_KEY] = RequestContext(
        user_id=user_id,
        timezone=request.headers.get("X-Timezone", ""),
        workspace_id=request.headers.get("X-Workspace-Id", ""),
        metadata={"request_id": request.headers.get("X-Request-Id", "")},
    )
    return await handler(request)


@web.middleware
async def error_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
    """Map failures to responses. Internal errors never reach the caller."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except SessionNotFoundError:
        return web.json_response({"error": "Session not found"}, status=404)
    except ValidationError as exc:
        details = exc.errors(include_url=False, include_context=False, include_input=False)
        return web.json_response({"error": "Invalid request", "details": details}, status=400)
    except Exception:
        logger.exception("Request failed: %s %s", request.method, request.path)
        return web.json_response({"error": RETRY_MESSAGE}, status=500)


async def _body(request: web.Request, model: type[BaseModel]) -> Any:
    try:
        payload = await request.json()
    except ValueError:
        raise web.HTTPBadRequest(
            text='{"error": "invalid JSON"}', content_type="application/json"
        ) from None
    return model.model_validate(payload)


def _context(request: web.Request) -> RequestContext:
    return request[_CONTEXT_KEY]


# -- Handlers ------------------------------------------------------------------


async def _health(request: web.Request) -> web.Response:
    """GET /health: basic liveness check."""
    return web.json_response({"status": "ok"})


async def _orchestrate(request: web.Request) -> web.Response:
    body = await _body(request, OrchestrateRequest)
    response = await Orchestrator().orchestrate(body, _context(request))
    return web.json_response(response.model_dump(mode="json", by_alias=True))


async def _list_sessions(request: web.Request) -> web.Response:
    sessions = await SessionStore.get().list_sessions(_context(request).user_id)
    return web.json_response({"sessions": sessions})


async def _delete_session(request: web.Request) -> web.Response:
    session_id = request.match_info["session_id"]
    if not await SessionStore.get().delete_session(_context(request).user_id, session_id):
        raise SessionNotFoundError(session_id)
    return web.json_response({"success": True})


async def _list_pending_actions(request: web.Request) -> web.Response:
    actions = await PendingActionManager().list_pending(_context(request).user_id)
    return web.json_response([dump(a) for a in actions])


async def _decide_pending_action(request: web.Request) -> web.Response:
    body = await _body(request, DecisionBody)
    manager = PendingActionManager()
    user_id = _context(request).user_id
    if body.decision == "approve":
        result = await manager.execute_pending_action(user_id, body.action_id)
    else:
        result = await manager.reject(user_id, body.action_id)
    payload: dict[str, Any] = {"success": result.success}
    if result.error:
        payload["error"] = result.error
    return web.json_response(payload)


async def _briefing(request: web.Request) -> web.Response:
    ctx = _context(request)
    timezone = request.query.get("timezone") or ctx.timezone
    engine = SchedulingEngine()
    rules = await engine.rules_for(ctx.user_id, ctx.workspace_id, timezone)
    briefing = await generate_daily_briefing(
        ctx.user_id,
        timezone,
        rules=rules,
        workspace=WorkspaceStore.get(),
        actions=PendingActionStore.get(),
    )
    return web.json_response(dump(briefing))


async def _classify(request: web.Request) -> web.Response:
    body = await _body(request, ThreadBody)
    messages = await WorkspaceStore.get().get_thread_messages(
        _context(request).user_id, body.thread_id, newest_first=True, limit=1
    )
    if not messages:
        return web.json_response({"error": "No messages found"}, status=404)
    latest = messages[0]
    result = await classify_email_intent(
        latest["subject"], latest["body"] or latest["snippet"], latest["sender_email"]
    )
    data = dump(result)
    data["actionable"] = is_actionable(result, settings.min_action_confidence)
    return web.json_response(data)


async def _schedule_reply(request: web.Request) -> web.Response:
    body = await _body(request, ScheduleReplyBody)
    ctx = _context(request)
    engine = SchedulingEngine()
    rules = await engine.rules_for(ctx.user_id, ctx.workspace_id, ctx.timezone)
    outcome = await engine.propose_scheduling_reply(
        ctx.user_id,
        rules,
        thread_id=body.thread_id,
        title=body.title,
        user_name=body.user_name,
        duration_minutes=body.duration_minutes,
        attendees=body.attendee_emails,
        date_from=body.date_from,
        date_to=body.date_to,
        meeting_format=body.format,
        location=body.location,
    )
    return web.json_response(dump(outcome))


async def _timebox(request: web.Request) -> web.Response:
    body = await _body(request, TimeboxBody)
    ctx = _context(request)
    engine = SchedulingEngine()
    rules = await engine.rules_for(ctx.user_id, ctx.workspace_id, ctx.timezone)
    outcome = await engine.timebox_task(
        ctx.user_id,
        rules,
        task_title=body.task_title,
        thread_id=body.thread_id,
        estimated_minutes=body.estimated_minutes,
        deadline=body.deadline,
    )
    return web.json_response(dump(outcome))


async def _tone_sync(request: web.Request) -> web.Response:
    body = await _body(request, ToneSyncBody)
    spawn_historical_sync(_context(request).user_id, body.messages)
    return web.json_response({"accepted": True, "messages": len(body.messages)}, status=202)


async def _tone_feedback(request: web.Request) -> web.Response:
    body = await _body(request, ToneFeedbackBody)
    spawn_delta_feedback(_context(request).user_id, body.original_draft, body.final_text)
    return web.json_response({"accepted": True}, status=202)


async def _rewrite_draft(request: web.Request) -> web.StreamResponse:
    """POST /api/rewrite-draft: stream the draft back in the requested tone."""
    body = await _body(request, RewriteDraftBody)
    prompt = f"Target tone: {body.tone}\n"
    profile = await ToneStore.get().get_profile(_context(request).user_id)
    if profile is not None:
        scores = ", ".join(f"{k} {v:.1f}" for k, v in profile.dimensions().items())
        prompt += f"The user's usual style (1-10): {scores}\n"
        if profile.vocabulary_quirks:
            prompt += f"Phrases they use: {', '.join(profile.vocabulary_quirks)}\n"
    prompt += f"\nDraft:\n{body.draft}"

    response = web.StreamResponse(headers={"Content-Type": "text/plain; charset=utf-8"})
    await response.prepare(request)
    try:
        async for chunk in stream_text(
            [ChatMessage.system(_REWRITE_SYSTEM), ChatMessage.user(prompt)],
            temperature=0.5,
        ):
            await response.write(chunk.encode())
    except Exception:
        # Headers are already sent; end the body instead of raising
        logger.exception("Draft rewrite stream failed")
    await response.write_eof()
    return response


async def _shopify_backfill(request: web.Request) -> web.Response:
    body = await _body(request, ShopifyBackfillBody)
    spawn_shopify_backfill(_context(request).user_id, body.shop_domain, body.access_token)
    return web.json_response({"accepted": True}, status=202)


def create_app() -> web.Application:
    """Build the aiohttp Application with routes."""
    app = web.Application(middlewares=[error_middleware, auth_middleware])
    app.router.add_get("/health", _health)
    app.router.add_post("/api/orchestrate", _orchestrate)
    app.router.add_get("/api/sessions", _list_sessions)
    app.router.add_delete("/api/sessions/{session_id}", _delete_session)
    app.router.add_get("/api/pending-actions", _list_pending_actions)
    app.router.add_post("/api/pending-actions", _decide_pending_action)
    app.router.add_get("/api/briefing", _briefing)
    app.router.add_post("/api/classify", _classify)
    app.router.add_post("/api/schedule-reply", _schedule_reply)
    app.router.add_post("/api/timebox", _timebox)
    app.router.add_post("/api/tone/sync", _tone_sync)
    app.router.add_post("/api/tone/feedback", _tone_feedback)
    app.router.add_post("/api/rewrite-draft", _rewrite_draft)
    app.router.add_post("/api/shopify/backfill", _shopify_backfill)
    return app


class AssistantServer:
    """Manages the aiohttp server lifecycle."""

    def __init__(self, host: str | None = None, port: int | None = None) -> None:
        self.host = host or settings.server_host
        self.port = port or settings.server_port
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        if not settings.api_key:
            logger.warning("API_KEY empty; every /api request will be rejected")

        self._runner = web.AppRunner(create_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("Assistant API listening on %s:%d", self.host, self.port)

    async def stop(self) -> None:
        """Shut down the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Assistant API stopped")
