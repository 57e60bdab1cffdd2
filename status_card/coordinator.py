from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Callable, Protocol

import structlog

from status_card.cache_gate import CacheFillGate
from status_card.errors import SelectorNotFound
from status_card.mapper import map_to_card
from status_card.models import CardModel, ContainerRecord, StatusImage
from status_card.rotation import RotationSelector

logger = structlog.get_logger(__name__)

OFFLINE_TITLE = "All servers offline"
OFFLINE_DETAIL = "No whitelisted container is currently running."


class Telemetry(Protocol):
    async def list_snapshot(self) -> list[ContainerRecord]: ...

    async def fetch_one(self, selector: str, hours: int) -> tuple[ContainerRecord, list[ContainerRecord]]: ...


class Renderer(Protocol):
    def render(self, card: CardModel, width: int, height: int) -> bytes: ...

    def render_fallback(self, width: int, height: int, title: str, detail: str) -> bytes: ...


def rotating_cache_key(hours: int) -> str:
    return f"status-png:rotating:{int(hours)}"


def pinned_cache_key(selector: str, hours: int) -> str:
    return f"status-png:pinned:{str(selector).strip().lower()}:{int(hours)}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StatusCoordinator:
    """
    Owns the cache gate and rotation state for the whole process.

    Both the image endpoint and the webhook publisher go through `generate_status`, so a
    scheduled publish and a live request share the same cached render.
    """

    def __init__(
        self,
        telemetry: Telemetry,
        renderer: Renderer,
        *,
        whitelist: list[str] | tuple[str, ...] | None = None,
        width: int = 640,
        height: int = 420,
        gate: CacheFillGate[StatusImage] | None = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.telemetry = telemetry
        self.renderer = renderer
        self.width = int(width)
        self.height = int(height)
        self.gate: CacheFillGate[StatusImage] = gate if gate is not None else CacheFillGate()
        self.selector = RotationSelector(telemetry, whitelist)
        self._now = now

    async def generate_status(
        self,
        cache_key: str,
        ttl: float,
        hours: int,
        selector: str | None = None,
    ) -> StatusImage:
        pinned = str(selector or "").strip() or None
        return await self.gate.get_or_build(cache_key, ttl, lambda: self._build(hours, pinned))

    async def generate_png(self, cache_key: str, ttl: float, hours: int, selector: str | None = None) -> bytes:
        status = await self.generate_status(cache_key, ttl, hours, selector)
        return status.png

    async def _next_resolved(self, hours: int) -> tuple[ContainerRecord, list[ContainerRecord]] | None:
        """
        Next rotation entry that still exists upstream, with its history.

        Containers removed since the snapshot was taken are skipped; once every entry of
        the snapshot has vanished this returns None and the offline card is shown.
        """
        skipped = 0
        nxt = await self.selector.next()
        while nxt is not None:
            try:
                # Resolve by full id so a name collision cannot pick a different container.
                return await self.telemetry.fetch_one(nxt.id, hours)
            except SelectorNotFound:
                skipped += 1
                logger.info("Rotation entry vanished; skipping", container=nxt.name, container_id=nxt.id)
                if skipped >= len(self.selector.snapshot()):
                    return None
            nxt = await self.selector.next()
        return None

    async def _build(self, hours: int, pinned: str | None) -> StatusImage:
        if pinned is not None:
            current, history = await self.telemetry.fetch_one(pinned, hours)
        else:
            resolved = await self._next_resolved(hours)
            if resolved is None:
                logger.info("No eligible containers online; rendering offline card")
                png = await asyncio.to_thread(
                    self.renderer.render_fallback, self.width, self.height, OFFLINE_TITLE, OFFLINE_DETAIL
                )
                return StatusImage(png=png, currently_showing=None, online_servers=[], generated_at=self._now())
            current, history = resolved

        card = map_to_card(current, history, hours, now=self._now())
        png = await asyncio.to_thread(self.renderer.render, card, self.width, self.height)
        logger.info(
            "Rendered status card",
            container=current.name,
            pinned=pinned is not None,
            hours=hours,
            samples=len(card.usage),
        )
        return StatusImage(
            png=png,
            currently_showing=current.name,
            online_servers=self.selector.online_names(),
            generated_at=self._now(),
        )

    async def render_fallback(self, title: str, detail: str) -> bytes:
        return await asyncio.to_thread(self.renderer.render_fallback, self.width, self.height, title, detail)
