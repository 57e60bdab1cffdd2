from __future__ import annotations

import json
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from status_card.errors import SelectorNotFound, UpstreamUnavailable
from status_card.models import ContainerRecord
from status_card.telemetry import STATS_PATH, TelemetryClient, TelemetryConfig, match_selector, parse_records

SNAPSHOT = [
    {"id": "abc123456789ff", "name": "api", "state": "running", "status": "Up 2 hours (healthy)", "memory_current": 512},
    {"id": "def987654321aa", "name": "Worker", "state": "exited", "status": "Exited (0) 3 hours ago"},
    {"id": "", "name": "nameless-id"},
    {"id": "0000", "name": None},
    "not-an-object",
]

HISTORY = [
    {"id": "abc123456789ff", "name": "api", "cpu_percent": 5.0, "memory_percent": 10.0, "timestamp": "2025-12-15T15:00:00"},
    {"cpu_percent": 7.5, "memory_percent": 11.0, "timestamp": "2025-12-15T15:05:00"},
]


class _FakeStatsHandler(BaseHTTPRequestHandler):
    history_queries: list[dict] = []

    def log_message(self, format: str, *args) -> None:  # noqa: A002
        return

    def _send(self, status: int, body: bytes) -> None:
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self) -> None:  # noqa: N802
        parsed = urlparse(self.path)
        if parsed.path == STATS_PATH:
            self._send(200, json.dumps(SNAPSHOT).encode("utf-8"))
            return
        if parsed.path == f"{STATS_PATH}abc123456789ff":
            type(self).history_queries.append(parse_qs(parsed.query))
            self._send(200, json.dumps(HISTORY).encode("utf-8"))
            return
        self._send(404, b'{"detail": "not found"}')


class _BrokenStatsHandler(_FakeStatsHandler):
    def do_GET(self) -> None:  # noqa: N802
        if urlparse(self.path).path == "/bad-json" + STATS_PATH:
            self._send(200, b"<html>oops</html>")
            return
        if urlparse(self.path).path == "/object" + STATS_PATH:
            self._send(200, b'{"containers": []}')
            return
        self._send(500, b'{"detail": "boom"}')


def _serve(handler: type[BaseHTTPRequestHandler]):
    httpd = HTTPServer(("127.0.0.1", 0), handler)
    host, port = httpd.server_address
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    return httpd, thread, f"http://{host}:{port}"


@pytest.fixture(scope="module")
def fake_stats_base_url() -> str:
    httpd, thread, url = _serve(_FakeStatsHandler)
    try:
        yield url
    finally:
        httpd.shutdown()
        thread.join(timeout=5)
        httpd.server_close()


@pytest.fixture(scope="module")
def broken_stats_base_url() -> str:
    httpd, thread, url = _serve(_BrokenStatsHandler)
    try:
        yield url
    finally:
        httpd.shutdown()
        thread.join(timeout=5)
        httpd.server_close()


def test_parse_records_drops_rows_without_id_or_name() -> None:
    records = parse_records(SNAPSHOT)
    assert [r.name for r in records] == ["api", "Worker"]
    assert records[0].memory_current == 512.0
    assert records[1].cpu_percent == 0.0


def test_parse_records_rejects_non_list() -> None:
    with pytest.raises(UpstreamUnavailable):
        parse_records({"containers": []})


def test_match_selector() -> None:
    records = [
        ContainerRecord(id="abc123", name="api"),
        ContainerRecord(id="abd999", name="ABC"),
    ]
    assert match_selector(records, "API").id == "abc123"
    assert match_selector(records, "abc").id == "abc123"
    assert match_selector(records, "abd").name == "ABC"
    assert match_selector(records, "zzz") is None
    assert match_selector(records, "  ") is None


@pytest.mark.asyncio
async def test_snapshot_and_pinned_fetch(fake_stats_base_url: str) -> None:
    _FakeStatsHandler.history_queries = []
    async with httpx.AsyncClient() as client:
        telemetry = TelemetryClient(client, TelemetryConfig(base_url=f"{fake_stats_base_url}/"))

        snapshot = await telemetry.list_snapshot()
        assert [r.id for r in snapshot] == ["abc123456789ff", "def987654321aa"]

        current, history = await telemetry.fetch_one("ABC1", 6)
        assert current.name == "api"
        assert len(history) == 2
        assert history[1].cpu_percent == 7.5

        by_name, _ = await telemetry.fetch_one("api", 1)
        assert by_name.id == "abc123456789ff"

    assert _FakeStatsHandler.history_queries == [{"h": ["6"]}, {"h": ["1"]}]


@pytest.mark.asyncio
async def test_unknown_selector_raises(fake_stats_base_url: str) -> None:
    async with httpx.AsyncClient() as client:
        telemetry = TelemetryClient(client, TelemetryConfig(base_url=fake_stats_base_url))
        with pytest.raises(SelectorNotFound) as info:
            await telemetry.fetch_one("does-not-exist", 6)
    assert info.value.selector == "does-not-exist"


@pytest.mark.asyncio
async def test_upstream_failures_map_to_unavailable(broken_stats_base_url: str) -> None:
    async with httpx.AsyncClient() as client:
        for prefix in ("", "/bad-json", "/object"):
            telemetry = TelemetryClient(client, TelemetryConfig(base_url=f"{broken_stats_base_url}{prefix}"))
            with pytest.raises(UpstreamUnavailable):
                await telemetry.list_snapshot()


@pytest.mark.asyncio
async def test_unreachable_upstream_maps_to_unavailable() -> None:
    async with httpx.AsyncClient() as client:
        telemetry = TelemetryClient(client, TelemetryConfig(base_url="http://127.0.0.1:1", timeout_seconds=1.0))
        with pytest.raises(UpstreamUnavailable):
            await telemetry.list_snapshot()
