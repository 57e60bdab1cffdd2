from __future__ import annotations

import math

import httpx
import structlog
from fastapi import FastAPI
from fastapi.responses import Response

from status_card import __version__
from status_card.coordinator import StatusCoordinator, pinned_cache_key, rotating_cache_key
from status_card.errors import SelectorNotFound, UpstreamUnavailable
from status_card.message_store import MessageIdStore
from status_card.publisher import StatusPublisher
from status_card.renderer import CardRenderer
from status_card.scheduler import JobScheduler
from status_card.settings import Settings
from status_card.telemetry import TelemetryClient, TelemetryConfig
from status_card.webhook import WebhookClient

logger = structlog.get_logger(__name__)

PUBLISH_JOB_ID = "status_publish"
MAX_HOURS = 168


def parse_hours(raw: str | None, default: int) -> int:
    if raw is None:
        return int(default)
    try:
        hours = int(str(raw).strip())
    except ValueError:
        return int(default)
    if hours < 1 or hours > MAX_HOURS:
        return int(default)
    return hours


def _png_response(png: bytes, *, max_age: int, error: str | None = None) -> Response:
    headers = {"Cache-Control": f"public,max-age={int(max_age)}"}
    if error:
        headers["X-Status-Card-Error"] = error
    return Response(content=png, media_type="image/png", headers=headers)


def build_coordinator(settings: Settings, http_client: httpx.AsyncClient) -> StatusCoordinator:
    telemetry = TelemetryClient(
        http_client,
        TelemetryConfig(base_url=settings.base_url, timeout_seconds=settings.request_timeout_seconds),
    )
    return StatusCoordinator(
        telemetry,
        CardRenderer(),
        whitelist=settings.container_whitelist,
        width=settings.image_width,
        height=settings.image_height,
    )


def build_publisher(
    settings: Settings, coordinator: StatusCoordinator, http_client: httpx.AsyncClient
) -> StatusPublisher | None:
    if not settings.publish_enabled or not settings.discord_webhook_url:
        return None
    return StatusPublisher(
        coordinator,
        WebhookClient(http_client, settings.discord_webhook_url),
        MessageIdStore(settings.message_id_path),
        hours=settings.publish_hours,
        ttl_seconds=settings.cache_ttl_seconds,
        image_url=settings.status_image_url,
    )


def create_app(
    settings: Settings,
    *,
    coordinator: StatusCoordinator | None = None,
    publisher: StatusPublisher | None = None,
    scheduler: JobScheduler | None = None,
) -> FastAPI:
    app = FastAPI(title="Status Card", version=__version__)
    app.state.settings = settings

    http_client = httpx.AsyncClient()
    app.state.http_client = http_client

    if coordinator is None:
        coordinator = build_coordinator(settings, http_client)
    if publisher is None:
        publisher = build_publisher(settings, coordinator, http_client)

    app.state.coordinator = coordinator
    app.state.publisher = publisher
    app.state.scheduler = scheduler or JobScheduler()

    @app.on_event("startup")
    async def _startup() -> None:
        pub: StatusPublisher | None = app.state.publisher
        if pub is None:
            logger.info("Webhook publisher disabled")
            return
        sched: JobScheduler = app.state.scheduler
        sched.add_interval_job(
            PUBLISH_JOB_ID,
            pub.run_cycle,
            settings.publish_interval_seconds,
            run_immediately=True,
            description="Publish status card to webhook",
        )
        sched.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        app.state.scheduler.stop()
        await app.state.http_client.aclose()

    @app.get("/")
    async def root() -> dict:
        sched: JobScheduler = app.state.scheduler
        return {
            "status": "healthy",
            "service": "status-card",
            "version": __version__,
            "publisher_enabled": app.state.publisher is not None,
            "publish_job": sched.get_job_status(PUBLISH_JOB_ID),
        }

    @app.get("/status.png")
    async def status_png(container: str | None = None, h: str | None = None) -> Response:
        coord: StatusCoordinator = app.state.coordinator
        hours = parse_hours(h, settings.default_hours)
        selector = str(container or "").strip() or None
        key = pinned_cache_key(selector, hours) if selector else rotating_cache_key(hours)
        ttl = settings.cache_ttl_seconds

        async def _unavailable(e: Exception) -> Response:
            stale = coord.gate.peek_stale(key, settings.stale_grace_seconds)
            if stale is not None:
                logger.warning("Upstream unavailable; serving stale image", key=key, error=str(e))
                return _png_response(stale.png, max_age=0, error="upstream_unavailable")
            logger.warning("Upstream unavailable; serving fallback image", key=key, error=str(e))
            png = await coord.render_fallback("Status unavailable", "Telemetry service is not responding.")
            return _png_response(png, max_age=0, error="upstream_unavailable")

        try:
            png = await coord.generate_png(key, ttl, hours, selector)
        except SelectorNotFound as e:
            if selector is None:
                # Only a pinned request can name a missing container.
                return await _unavailable(e)
            logger.info("Selector not found", selector=e.selector)
            png = await coord.render_fallback("Container not found", f"No container matches '{selector}'.")
            return _png_response(png, max_age=0, error="selector_not_found")
        except UpstreamUnavailable as e:
            return await _unavailable(e)
        except Exception as e:
            logger.error("Status image generation failed", key=key, error_type=type(e).__name__, error=str(e))
            png = await coord.render_fallback("Status unavailable", "Could not generate the status image.")
            return _png_response(png, max_age=0, error="internal_error")

        max_age = max(1, int(math.ceil(coord.gate.ttl_remaining(key))))
        return _png_response(png, max_age=max_age)

    return app
