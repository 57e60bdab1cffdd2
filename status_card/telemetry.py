from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from status_card.errors import SelectorNotFound, UpstreamUnavailable
from status_card.models import ContainerRecord

logger = structlog.get_logger(__name__)

STATS_PATH = "/api/containers/stats/"


@dataclass(frozen=True)
class TelemetryConfig:
    base_url: str
    timeout_seconds: float = 3.0


def parse_records(data: Any) -> list[ContainerRecord]:
    """
    Decode a stats response body. Items without id or name are dropped; API order is kept.
    """
    if not isinstance(data, list):
        raise UpstreamUnavailable("Unexpected telemetry response (not a JSON list)")
    out: list[ContainerRecord] = []
    for item in data:
        if not isinstance(item, dict):
            continue
        try:
            rec = ContainerRecord.model_validate(item)
        except ValidationError:
            continue
        if not rec.id or not rec.name:
            continue
        out.append(rec)
    return out


def match_selector(records: list[ContainerRecord], selector: str) -> ContainerRecord | None:
    """Exact name (case-insensitive) or id prefix (case-insensitive); first hit in API order."""
    sel = str(selector or "").strip().lower()
    if not sel:
        return None
    for rec in records:
        if rec.name.lower() == sel or rec.id.lower().startswith(sel):
            return rec
    return None


class TelemetryClient:
    """Read-only client for the container stats API."""

    def __init__(self, client: httpx.AsyncClient, config: TelemetryConfig) -> None:
        self._client = client
        self._config = config

    def _url(self, path: str) -> str:
        return f"{self._config.base_url.rstrip('/')}{path}"

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        url = self._url(path)
        try:
            resp = await self._client.get(url, params=params, timeout=self._config.timeout_seconds)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as exc:
            logger.warning("Telemetry request failed", url=url, status_code=exc.response.status_code)
            raise UpstreamUnavailable(f"Telemetry returned HTTP {exc.response.status_code} for {path}") from exc
        except httpx.HTTPError as exc:
            logger.warning("Telemetry request failed", url=url, error=f"{type(exc).__name__}: {exc}")
            raise UpstreamUnavailable(f"Telemetry unreachable: {type(exc).__name__}: {exc}") from exc
        except ValueError as exc:
            logger.warning("Telemetry returned malformed JSON", url=url)
            raise UpstreamUnavailable(f"Malformed telemetry response for {path}") from exc

    async def list_snapshot(self) -> list[ContainerRecord]:
        data = await self._get_json(STATS_PATH)
        return parse_records(data)

    async def fetch_history(self, container_id: str, hours: int) -> list[ContainerRecord]:
        data = await self._get_json(f"{STATS_PATH}{container_id}", params={"h": int(hours)})
        # History rows may legitimately repeat the id/name fields or omit them.
        if not isinstance(data, list):
            raise UpstreamUnavailable("Unexpected telemetry history response (not a JSON list)")
        out: list[ContainerRecord] = []
        for item in data:
            if not isinstance(item, dict):
                continue
            try:
                out.append(ContainerRecord.model_validate(item))
            except ValidationError:
                continue
        return out

    async def fetch_one(self, selector: str, hours: int) -> tuple[ContainerRecord, list[ContainerRecord]]:
        """
        Resolve `selector` against the current snapshot and load its history.

        Raises SelectorNotFound when nothing matches, UpstreamUnavailable on transport trouble.
        """
        records = await self.list_snapshot()
        current = match_selector(records, selector)
        if current is None:
            raise SelectorNotFound(selector)
        history = await self.fetch_history(current.id, hours)
        return current, history
