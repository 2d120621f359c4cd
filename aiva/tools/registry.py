"""Tool registry: the closed catalog the orchestrator exposes to the model."""

from __future__ import annotations

import inspect
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from aiva.tools.base import ToolName, ToolParams, ToolResult

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from aiva.context import RequestContext

logger = logging.getLogger(__name__)

UNKNOWN_TOOL = "Unknown tool"

_EMPTY_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}}


@dataclass(frozen=True)
class ToolDef:
    name: ToolName
    description: str
    category: str
    handler: Callable[..., Awaitable[ToolResult]]
    params_model: type[ToolParams] | None = None
    takes_context: bool = False

    def schema(self) -> dict[str, Any]:
        """The entry the model sees in its tool list."""
        return {
            "name": str(self.name),
            "description": self.description,
            "input_schema": (
                self.params_model.model_json_schema() if self.params_model else _EMPTY_SCHEMA
            ),
        }

    def bind(self, arguments: dict[str, Any], context: RequestContext | None) -> dict[str, Any]:
        """Validate model-supplied arguments into handler kwargs.

        Arguments are dropped for tools without a params model. Raises
        ``ValidationError``.
        """
        kwargs = (
            self.params_model.model_validate(arguments).model_dump()
            if self.params_model
            else {}
        )
        if self.takes_context:
            kwargs["context"] = context
        return kwargs


class ToolRegistry:
    """Maps each ``ToolName`` to its handler.

    Only ``ToolName`` members can be registered, so the catalog is fixed at
    import time::

        @registry.tool(
            name=ToolName.LIST_TASKS,
            description="List the user's tasks",
            category="tasks",
            params_model=ListTasksParams,
        )
        async def list_tasks(status: str | None = None, context=None) -> ToolResult:
            ...

    Handlers that declare a ``context`` parameter receive the caller's
    ``RequestContext``.
    """

    def __init__(self) -> None:
        self._tools: dict[ToolName, ToolDef] = {}

    def tool(
        self,
        *,
        name: ToolName,
        description: str,
        category: str,
        params_model: type[ToolParams] | None = None,
    ) -> Callable:
        def decorator(fn: Callable[..., Awaitable[ToolResult]]) -> Callable:
            if not isinstance(name, ToolName):
                msg = f"Tool name must be a ToolName member, got {name!r}"
                raise TypeError(msg)
            if not inspect.iscoroutinefunction(fn):
                msg = f"Tool handler '{name}' must be an async function"
                raise TypeError(msg)
            if name in self._tools:
                logger.warning("Tool '%s' registered twice; keeping the latest", name)

            self._tools[name] = ToolDef(
                name=name,
                description=description,
                category=category,
                handler=fn,
                params_model=params_model,
                takes_context="context" in inspect.signature(fn).parameters,
            )
            return fn

        return decorator

    def get(self, name: str) -> ToolDef | None:
        """Look up a tool by name. Names outside the catalog give None."""
        try:
            return self._tools.get(ToolName(name))
        except ValueError:
            return None

    @property
    def tool_names(self) -> list[str]:
        return [str(n) for n in self._tools]

    def missing(self) -> list[ToolName]:
        """Catalog entries with no registered handler."""
        return [n for n in ToolName if n not in self._tools]

    def get_schemas(self) -> list[dict[str, Any]]:
        return [t.schema() for t in self._tools.values()]

    async def execute(
        self,
        name: str,
        arguments: dict[str, Any],
        context: RequestContext | None = None,
    ) -> ToolResult:
        """Run one tool call. Never raises: failures come back as error results."""
        tool_def = self.get(name)
        if tool_def is None:
            logger.warning("Unknown tool requested: %s", name)
            return ToolResult(error=UNKNOWN_TOOL)

        try:
            kwargs = tool_def.bind(arguments, context)
        except ValidationError as exc:
            logger.warning("Tool '%s' got invalid arguments: %s", name, exc)
            return ToolResult(error=f"Invalid arguments for {name}: {exc.error_count()} error(s)")

        logger.info("Tool '%s' called with %s", name, arguments)
        t0 = time.monotonic()
        try:
            result = await tool_def.handler(**kwargs)
        except Exception:
            logger.exception("Tool '%s' failed in %.2fs", name, time.monotonic() - t0)
            return ToolResult(error=f"Tool '{name}' failed. Check logs for details.")

        elapsed = time.monotonic() - t0
        if result.success:
            logger.info("Tool '%s' succeeded in %.2fs", name, elapsed)
        else:
            logger.warning("Tool '%s' returned error in %.2fs: %s", name, elapsed, result.error)
        return result

    async def dispatch(
        self,
        name: str,
        arguments: dict[str, Any],
        context: RequestContext | None = None,
    ) -> str:
        """Execute and serialize. This string is all the orchestrator sees."""
        return (await self.execute(name, arguments, context)).to_content()


registry = ToolRegistry()
