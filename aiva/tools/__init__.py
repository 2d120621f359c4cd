"""The assistant's tools. Importing this package registers every handler."""

import logging

from aiva.tools import calendar_tools, inbox_tools, nexus_tools, task_tools  # noqa: F401
from aiva.tools.registry import registry

if registry.missing():
    logging.getLogger(__name__).warning(
        "Tools without handlers: %s", ", ".join(registry.missing())
    )

__all__ = ["registry"]
