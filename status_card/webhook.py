from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from status_card.errors import PublishTransportError


class EditStatus(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class Attachment:
    data: bytes
    filename: str = "status.png"
    content_type: str = "image/png"


def redact_webhook_url(text: str, webhook_url: str) -> str:
    """Webhook URLs embed their token; never let one reach the logs."""
    if not webhook_url:
        return text
    return str(text).replace(webhook_url.rstrip("/"), "<webhook>")


class WebhookClient:
    """Discord-style webhook transport: create with `?wait=true`, edit via `/messages/<id>`."""

    def __init__(self, client: httpx.AsyncClient, webhook_url: str, *, timeout_seconds: float = 15.0) -> None:
        self._client = client
        self._webhook_url = str(webhook_url or "").rstrip("/")
        self._timeout = float(timeout_seconds)

    def _request_kwargs(self, payload: dict[str, Any], attachment: Attachment | None) -> dict[str, Any]:
        if attachment is None:
            return {"json": payload}
        return {
            "data": {"payload_json": json.dumps(payload, ensure_ascii=False)},
            "files": {"files[0]": (attachment.filename, attachment.data, attachment.content_type)},
        }

    def _error(self, prefix: str, exc: Exception) -> PublishTransportError:
        msg = redact_webhook_url(f"{prefix}: {type(exc).__name__}: {exc}", self._webhook_url)
        return PublishTransportError(msg)

    async def create(self, payload: dict[str, Any], attachment: Attachment | None = None) -> str:
        url = f"{self._webhook_url}?wait=true"
        try:
            resp = await self._client.post(url, timeout=self._timeout, **self._request_kwargs(payload, attachment))
        except httpx.HTTPError as exc:
            raise self._error("Webhook create failed", exc) from exc

        if resp.status_code >= 400:
            raise PublishTransportError(
                f"Webhook create failed {resp.status_code}: {resp.text[:500]}", status_code=resp.status_code
            )
        try:
            data = resp.json()
        except ValueError as exc:
            raise PublishTransportError("Webhook create returned malformed JSON", status_code=resp.status_code) from exc

        message_id = str(data.get("id") or "").strip() if isinstance(data, dict) else ""
        if not message_id:
            raise PublishTransportError("Webhook response missing message id", status_code=resp.status_code)
        return message_id

    async def edit(self, message_id: str, payload: dict[str, Any], attachment: Attachment | None = None) -> EditStatus:
        url = f"{self._webhook_url}/messages/{message_id}"
        try:
            resp = await self._client.request(
                "PATCH", url, timeout=self._timeout, **self._request_kwargs(payload, attachment)
            )
        except httpx.HTTPError as exc:
            raise self._error("Webhook edit failed", exc) from exc

        if resp.status_code == 404:
            return EditStatus.NOT_FOUND
        if resp.status_code >= 400:
            raise PublishTransportError(
                f"Webhook edit failed {resp.status_code}: {resp.text[:500]}", status_code=resp.status_code
            )
        return EditStatus.OK
