"""Command line entry point."""

import logging
from typing import Any

import click
import uvicorn

from visionstruct.server.app import create_app
from visionstruct.settings import Settings
from visionstruct.utilities.logging import configure_logging

logger = logging.getLogger(__name__)


@click.command()
@click.option("--host", default=None, help="Interface to bind (default from settings)")
@click.option("--port", type=int, default=None, help="Port to listen on for SSE (default from settings)")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Log level",
)
@click.option("--model", default=None, help="Vision model identifier passed to the backend")
def main(host: str | None, port: int | None, log_level: str | None, model: str | None) -> int:
    overrides: dict[str, Any] = {"host": host, "port": port, "model": model}
    if log_level is not None:
        overrides["log_level"] = log_level.upper()
    settings = Settings(**{key: value for key, value in overrides.items() if value is not None})

    configure_logging(settings.log_level)
    if not settings.has_api_key:
        logger.warning("API_KEY is not set; vision_to_json calls will fail until it is configured")

    starlette_app = create_app(settings)
    logger.info(f"VisionStruct MCP server running on port {settings.port}")
    logger.info(f"SSE Endpoint: http://{settings.host}:{settings.port}{settings.sse_path}")
    uvicorn.run(starlette_app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
    return 0
