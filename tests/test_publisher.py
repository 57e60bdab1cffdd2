from __future__ import annotations

from datetime import datetime, timezone

import pytest

from status_card.errors import PublishTransportError
from status_card.message_store import MessageIdStore
from status_card.models import StatusImage
from status_card.publisher import (
    EMBED_COLOR,
    EMBED_TITLE,
    PublishOutcome,
    StatusPublisher,
    build_payload,
    cache_busted_url,
)
from status_card.webhook import EditStatus

GENERATED = datetime(2025, 12, 15, 16, 0, tzinfo=timezone.utc)
UNIX = int(GENERATED.timestamp())


def _status(showing: str | None = "api", online: list[str] | None = None) -> StatusImage:
    return StatusImage(
        png=b"\x89PNG fake",
        currently_showing=showing,
        online_servers=["api", "db"] if online is None else online,
        generated_at=GENERATED,
    )


class _Coordinator:
    def __init__(self, status: StatusImage | None = None, error: Exception | None = None) -> None:
        self.status = status or _status()
        self.error = error
        self.calls: list[tuple] = []

    async def generate_status(self, cache_key, ttl, hours, selector=None):
        self.calls.append((cache_key, ttl, hours, selector))
        if self.error is not None:
            raise self.error
        return self.status


class _Transport:
    def __init__(self, edit_result: EditStatus = EditStatus.OK, error: Exception | None = None) -> None:
        self.edit_result = edit_result
        self.error = error
        self.created: list[tuple] = []
        self.edited: list[tuple] = []
        self._next_id = 1000

    async def create(self, payload, attachment=None):
        if self.error is not None:
            raise self.error
        self._next_id += 1
        self.created.append((payload, attachment))
        return str(self._next_id)

    async def edit(self, message_id, payload, attachment=None):
        if self.error is not None:
            raise self.error
        self.edited.append((message_id, payload, attachment))
        return self.edit_result


@pytest.fixture
def store(tmp_path):
    return MessageIdStore(tmp_path / "data" / "message-id.txt")


@pytest.mark.asyncio
async def test_first_cycle_creates_and_persists_id(store):
    coordinator = _Coordinator()
    transport = _Transport()
    publisher = StatusPublisher(coordinator, transport, store, hours=6, ttl_seconds=60)

    assert await publisher.publish_once() == PublishOutcome.CREATED
    assert store.try_read() == "1001"
    assert coordinator.calls == [("status-png:rotating:6", 60.0, 6, None)]

    payload, attachment = transport.created[0]
    assert attachment.filename == "status.png"
    assert attachment.data == b"\x89PNG fake"
    assert payload["embeds"][0]["image"]["url"] == "attachment://status.png"


@pytest.mark.asyncio
async def test_existing_id_is_edited_in_place(store):
    store.write("555")
    transport = _Transport()
    publisher = StatusPublisher(_Coordinator(), transport, store)

    assert await publisher.publish_once() == PublishOutcome.EDITED
    assert transport.created == []
    assert transport.edited[0][0] == "555"
    assert store.try_read() == "555"


@pytest.mark.asyncio
async def test_missing_message_is_recreated(store):
    store.write("555")
    transport = _Transport(edit_result=EditStatus.NOT_FOUND)
    publisher = StatusPublisher(_Coordinator(), transport, store)

    assert await publisher.publish_once() == PublishOutcome.RECREATED
    assert len(transport.created) == 1
    assert store.try_read() == "1001"


@pytest.mark.asyncio
async def test_transport_failure_keeps_stored_id(store):
    store.write("555")
    transport = _Transport(error=PublishTransportError("boom", status_code=500))
    publisher = StatusPublisher(_Coordinator(), transport, store)

    with pytest.raises(PublishTransportError):
        await publisher.publish_once()
    assert store.try_read() == "555"

    assert await publisher.run_cycle() is None
    assert store.try_read() == "555"


@pytest.mark.asyncio
async def test_run_cycle_swallows_generation_errors(store):
    publisher = StatusPublisher(_Coordinator(error=RuntimeError("render crashed")), _Transport(), store)
    assert await publisher.run_cycle() is None
    assert store.try_read() is None


@pytest.mark.asyncio
async def test_url_mode_sends_no_attachment(store):
    transport = _Transport()
    publisher = StatusPublisher(_Coordinator(), transport, store, image_url="https://cdn.example/status.png")

    await publisher.publish_once()
    payload, attachment = transport.created[0]
    assert attachment is None
    assert payload["embeds"][0]["image"]["url"] == f"https://cdn.example/status.png?v={UNIX}"


def test_payload_shape():
    payload = build_payload(_status())
    embed = payload["embeds"][0]
    assert payload["attachments"] == []
    assert embed["title"] == EMBED_TITLE
    assert embed["color"] == EMBED_COLOR
    assert embed["description"].splitlines() == [
        f"Generated at <t:{UNIX}>",
        "Current Online Servers: api, db",
        "Currently showing: api",
    ]


def test_payload_when_nothing_online():
    embed = build_payload(_status(showing=None, online=[]))["embeds"][0]
    assert embed["description"].splitlines() == [f"Generated at <t:{UNIX}>", "Current Online Servers: none"]


def test_cache_busted_url_keeps_existing_query():
    assert cache_busted_url("https://x/s.png", 7) == "https://x/s.png?v=7"
    assert cache_busted_url("https://x/s.png?h=6", 7) == "https://x/s.png?h=6&v=7"


def test_message_store_roundtrip(tmp_path):
    store = MessageIdStore(tmp_path / "nested" / "id.txt")
    assert store.try_read() is None
    store.write(" 42 \n")
    assert store.try_read() == "42"
    assert not (tmp_path / "nested" / "id.txt.tmp").exists()
    store.delete()
    assert store.try_read() is None
    store.delete()


def test_message_store_blank_file_reads_as_missing(tmp_path):
    path = tmp_path / "id.txt"
    path.write_text("  \n", encoding="utf-8")
    assert MessageIdStore(path).try_read() is None
