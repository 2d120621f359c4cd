"""AIVA API entry point."""

import asyncio
import logging

from aiva.config import settings

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)


async def _serve() -> None:
    from aiva.llm.models import ModelManager
    from aiva.server import AssistantServer

    ModelManager.get()
    server = AssistantServer()
    await server.start()
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()


def main() -> None:
    """Start the HTTP API and serve until interrupted."""
    if not settings.anthropic_api_key:
        logger.warning("ANTHROPIC_API_KEY is empty; model calls will fail")
    logger.info("Starting AIVA on %s:%d...", settings.server_host, settings.server_port)
    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        logger.info("Shutting down")


if __name__ == "__main__":
    main()
