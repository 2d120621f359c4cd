"""Tests for scheduling-rule resolution."""

import pytest
from pydantic import ValidationError

from aiva.config import Settings
from aiva.nexus.models import SchedulingRules
from aiva.nexus.rules import default_rules_from_settings, merge_rules, resolve_rules
from aiva.workspace.store import WorkspaceStore

pytestmark = pytest.mark.usefixtures("_no_turso")


@pytest.fixture
def defaults() -> SchedulingRules:
    return default_rules_from_settings(Settings(), timezone="Europe/London")


class TestDefaults:
    def test_built_from_settings(self):
        config = Settings(default_buffer_minutes=10, default_no_meeting_days="0,6")
        rules = default_rules_from_settings(config)
        assert rules.buffer_minutes == 10
        assert rules.no_meeting_days == (0, 6)
        assert rules.timezone == "America/New_York"
        assert rules.default_video_link is None

    def test_caller_timezone_wins(self, defaults: SchedulingRules):
        assert defaults.timezone == "Europe/London"

    def test_workday_hours(self, defaults: SchedulingRules):
        assert defaults.workday_hours == 8


class TestMergeRules:
    def test_camel_case_keys(self, defaults: SchedulingRules):
        merged = merge_rules(defaults, {"bufferMinutes": 5, "workingHoursStart": "08:00"})
        assert merged.buffer_minutes == 5
        assert merged.working_hours_start == "08:00"
        assert merged.working_hours_end == defaults.working_hours_end

    def test_unknown_keys_dropped(self, defaults: SchedulingRules):
        assert merge_rules(defaults, {"favouriteColour": "blue"}) == defaults

    def test_bad_values_raise(self, defaults: SchedulingRules):
        with pytest.raises(ValidationError):
            merge_rules(defaults, {"noMeetingDays": [9]})
        with pytest.raises(ValidationError):
            merge_rules(defaults, {"workingHoursEnd": "five"})


class TestResolveRules:
    async def test_defaults_when_no_overrides(self, workspace: WorkspaceStore, defaults):
        assert await resolve_rules(workspace, "u1", "ws1", defaults) == defaults

    async def test_user_override_wins(self, workspace: WorkspaceStore, defaults):
        await workspace.set_rules_override("workspace", "ws1", {"bufferMinutes": 30})
        await workspace.set_rules_override("user", "u1", {"bufferMinutes": 5})
        rules = await resolve_rules(workspace, "u1", "ws1", defaults)
        assert rules.buffer_minutes == 5

    async def test_workspace_fallback(self, workspace: WorkspaceStore, defaults):
        await workspace.set_rules_override("workspace", "ws1", {"bufferMinutes": 30})
        rules = await resolve_rules(workspace, "u1", "ws1", defaults)
        assert rules.buffer_minutes == 30

    async def test_invalid_user_override_falls_through(self, workspace: WorkspaceStore, defaults):
        await workspace.set_rules_override("user", "u1", {"noMeetingDays": [42]})
        await workspace.set_rules_override("workspace", "ws1", {"bufferMinutes": 20})
        rules = await resolve_rules(workspace, "u1", "ws1", defaults)
        assert rules.buffer_minutes == 20
