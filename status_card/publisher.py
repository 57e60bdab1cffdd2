"""Keeps one webhook message in sync with the latest rotating status card."""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Protocol

import structlog

from status_card.coordinator import StatusCoordinator, rotating_cache_key
from status_card.errors import StatusCardError
from status_card.models import StatusImage
from status_card.webhook import Attachment, EditStatus

logger = structlog.get_logger(__name__)

EMBED_TITLE = "Current Server Status"
EMBED_COLOR = 3066993
FILE_NAME = "status.png"


class PublishOutcome(str, Enum):
    CREATED = "created"
    EDITED = "edited"
    RECREATED = "recreated"


class MessageTransport(Protocol):
    async def create(self, payload: dict[str, Any], attachment: Attachment | None = None) -> str: ...

    async def edit(
        self, message_id: str, payload: dict[str, Any], attachment: Attachment | None = None
    ) -> EditStatus: ...


class IdentityStore(Protocol):
    def try_read(self) -> str | None: ...

    def write(self, message_id: str) -> None: ...

    def delete(self) -> None: ...


def cache_busted_url(url: str, unix_ts: int) -> str:
    sep = "&" if "?" in url else "?"
    return f"{url}{sep}v={int(unix_ts)}"


def build_payload(status: StatusImage, *, image_url: str | None = None) -> dict[str, Any]:
    """
    Embed payload for create and edit.

    `attachments: []` drops whatever file the previous edit carried, so the message never
    accumulates images.
    """
    unix_ts = int(status.generated_at.timestamp())
    online = ", ".join(status.online_servers) if status.online_servers else "none"
    lines = [f"Generated at <t:{unix_ts}>", f"Current Online Servers: {online}"]
    if status.currently_showing:
        lines.append(f"Currently showing: {status.currently_showing}")

    embed_image = cache_busted_url(image_url, unix_ts) if image_url else f"attachment://{FILE_NAME}"
    return {
        "embeds": [
            {
                "title": EMBED_TITLE,
                "description": "\n".join(lines),
                "image": {"url": embed_image},
                "color": EMBED_COLOR,
            }
        ],
        "attachments": [],
    }


class StatusPublisher:
    def __init__(
        self,
        coordinator: StatusCoordinator,
        transport: MessageTransport,
        store: IdentityStore,
        *,
        hours: int = 6,
        ttl_seconds: float = 60,
        image_url: str | None = None,
    ) -> None:
        self.coordinator = coordinator
        self.transport = transport
        self.store = store
        self.hours = int(hours)
        self.ttl_seconds = float(ttl_seconds)
        self.image_url = str(image_url or "").strip() or None
        self._cycle_lock = asyncio.Lock()

    async def publish_once(self) -> PublishOutcome:
        """One create/edit/recreate pass. Errors other than a missing message propagate."""
        async with self._cycle_lock:
            status = await self.coordinator.generate_status(
                rotating_cache_key(self.hours), self.ttl_seconds, self.hours, None
            )
            payload = build_payload(status, image_url=self.image_url)
            attachment = None if self.image_url else Attachment(status.png, FILE_NAME, "image/png")

            message_id = self.store.try_read()
            if message_id is None:
                logger.info("No stored message id; sending new message")
                new_id = await self.transport.create(payload, attachment)
                self.store.write(new_id)
                logger.info("Message sent", message_id=new_id, showing=status.currently_showing)
                return PublishOutcome.CREATED

            result = await self.transport.edit(message_id, payload, attachment)
            if result == EditStatus.NOT_FOUND:
                logger.warning("Stored message not found; sending a replacement", message_id=message_id)
                self.store.delete()
                new_id = await self.transport.create(payload, attachment)
                self.store.write(new_id)
                logger.info("Message re-sent", message_id=new_id, showing=status.currently_showing)
                return PublishOutcome.RECREATED

            logger.info("Message edited", message_id=message_id, showing=status.currently_showing)
            return PublishOutcome.EDITED

    async def run_cycle(self) -> PublishOutcome | None:
        """Scheduler entry point: never raises, the next tick retries."""
        try:
            return await self.publish_once()
        except StatusCardError as e:
            logger.warning("Status publish failed", error_type=type(e).__name__, error=str(e))
        except Exception as e:
            logger.error("Unexpected error publishing status", error_type=type(e).__name__, error=str(e))
        return None
