"""Scheduling-rule resolution: user override, then workspace, then defaults."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError
from pydantic.alias_generators import to_snake

from aiva.nexus.models import SchedulingRules

if TYPE_CHECKING:
    from aiva.config import Settings
    from aiva.workspace.store import WorkspaceStore

logger = logging.getLogger(__name__)

USER_SCOPE = "user"
WORKSPACE_SCOPE = "workspace"


def default_rules_from_settings(config: Settings, timezone: str | None = None) -> SchedulingRules:
    """Build the fallback rule set from configuration.

    *timezone* (the caller's zone) replaces the configured default zone.
    """
    return SchedulingRules(
        buffer_minutes=config.default_buffer_minutes,
        working_hours_start=config.default_working_hours_start,
        working_hours_end=config.default_working_hours_end,
        no_meeting_days=tuple(config.get_no_meeting_days()),
        default_meeting_duration=config.default_meeting_duration,
        timezone=timezone or config.default_timezone,
        default_video_link=config.default_video_link or None,
    )


def merge_rules(defaults: SchedulingRules, override: dict[str, Any]) -> SchedulingRules:
    """Overlay a stored override (camelCase or snake_case keys) on *defaults*.

    Unknown keys are dropped. Raises ``ValidationError`` for bad values.
    """
    fields = SchedulingRules.model_fields
    merged = defaults.model_dump()
    for key, value in override.items():
        name = to_snake(key)
        if name in fields:
            merged[name] = value
    return SchedulingRules.model_validate(merged)


async def resolve_rules(
    store: WorkspaceStore,
    user_id: str,
    workspace_id: str,
    defaults: SchedulingRules,
) -> SchedulingRules:
    """Return the caller's effective rules.

    The user override wins; if there is none the workspace override is used;
    otherwise *defaults* apply unchanged.
    """
    for scope, scope_id in ((USER_SCOPE, user_id), (WORKSPACE_SCOPE, workspace_id)):
        override = await store.get_rules_override(scope, scope_id)
        if not override:
            continue
        try:
            return merge_rules(defaults, override)
        except ValidationError:
            logger.warning("Ignoring invalid %s scheduling rules for %s", scope, scope_id)
    return defaults
