"""
Entry point for the status card service.

Usage:
    python -m status_card.server                    # serve /status.png + run the webhook publisher
    python -m status_card.server publish            # one publish cycle, then exit
    python -m status_card.server render out.png     # render one card to a file
    python -m status_card.server render out.png --container api --hours 6
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import httpx
import structlog
import uvicorn

from status_card.app import build_coordinator, build_publisher, create_app
from status_card.coordinator import pinned_cache_key, rotating_cache_key
from status_card.errors import ConfigError, StatusCardError
from status_card.settings import Settings, load_settings

logger = structlog.get_logger(__name__)


def configure_logging(level: str = "INFO") -> None:
    numeric = logging.getLevelName(str(level or "INFO").upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="status-card", description="Rotating container status card service")
    parser.add_argument("--config", default=None, help="YAML config path (default: $STATUS_CARD_CONFIG)")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Run the HTTP server and webhook publisher (default)")
    sub.add_parser("publish", help="Run one webhook publish cycle and exit")

    render = sub.add_parser("render", help="Render one status card to a PNG file")
    render.add_argument("output", help="Output PNG path")
    render.add_argument("--container", default=None, help="Pin to a container name or id prefix")
    render.add_argument("--hours", type=int, default=None, help="History window in hours")
    return parser


async def _publish_once(settings: Settings) -> int:
    async with httpx.AsyncClient() as client:
        coordinator = build_coordinator(settings, client)
        publisher = build_publisher(settings, coordinator, client)
        if publisher is None:
            logger.error("Publisher is disabled; set DISCORD_WEBHOOK_URL and PUBLISH_ENABLED")
            return 2
        try:
            outcome = await publisher.publish_once()
        except StatusCardError as e:
            logger.error("Publish failed", error_type=type(e).__name__, error=str(e))
            return 1
    logger.info("Publish finished", outcome=outcome.value)
    return 0


async def _render_once(settings: Settings, output: str, container: str | None, hours: int | None) -> int:
    h = int(hours or settings.default_hours)
    key = pinned_cache_key(container, h) if container else rotating_cache_key(h)
    async with httpx.AsyncClient() as client:
        coordinator = build_coordinator(settings, client)
        try:
            png = await coordinator.generate_png(key, settings.cache_ttl_seconds, h, container)
        except StatusCardError as e:
            logger.error("Render failed", error_type=type(e).__name__, error=str(e))
            return 1
    path = Path(output)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(png)
    logger.info("Rendered status card", path=str(path), bytes=len(png))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    command = args.command or "serve"

    try:
        settings = load_settings(args.config)
        configure_logging(settings.log_level)
        if command == "serve":
            settings.validate_required()
        elif not settings.base_url:
            raise ConfigError(["BASE_URL"])
    except ConfigError as e:
        logger.error("Refusing to start", error=str(e))
        return 2

    if command == "publish":
        return asyncio.run(_publish_once(settings))
    if command == "render":
        return asyncio.run(_render_once(settings, args.output, args.container, args.hours))

    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
