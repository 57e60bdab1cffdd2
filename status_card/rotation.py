from __future__ import annotations

from typing import Iterable, Protocol

import structlog

from status_card.models import ContainerRecord

logger = structlog.get_logger(__name__)

# One refetch after exhausting a snapshot; a second empty pass means nothing is online.
_MAX_PASSES = 2


class SnapshotSource(Protocol):
    async def list_snapshot(self) -> list[ContainerRecord]: ...


def normalize_whitelist(items: Iterable[str] | None) -> tuple[str, ...]:
    out: list[str] = []
    for x in items or ():
        s = str(x or "").strip().lower()
        if s:
            out.append(s)
    return tuple(out)


def is_whitelisted(record: ContainerRecord, whitelist: tuple[str, ...]) -> bool:
    if not whitelist:
        return True
    name = record.name.lower()
    cid = record.id.lower()
    for entry in whitelist:
        if name == entry or cid.startswith(entry):
            return True
    return False


def filter_eligible(records: Iterable[ContainerRecord], whitelist: tuple[str, ...]) -> list[ContainerRecord]:
    """Whitelist first, then running-only. Keeps fetch order."""
    allowed = [r for r in records if is_whitelisted(r, whitelist)]
    return [r for r in allowed if r.is_running]


class RotationSelector:
    """
    Walks a snapshot of eligible containers one at a time.

    The snapshot is loaded lazily, visited once in fetch order, then discarded so the
    next call refetches. Not synchronized: callers must hold the cache gate's lock.
    """

    def __init__(self, source: SnapshotSource, whitelist: Iterable[str] | None = None) -> None:
        self._source = source
        self._whitelist = normalize_whitelist(whitelist)
        self._snapshot: list[ContainerRecord] = []
        self._cursor = -1

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def whitelist(self) -> tuple[str, ...]:
        return self._whitelist

    def snapshot(self) -> list[ContainerRecord]:
        return list(self._snapshot)

    def online_names(self) -> list[str]:
        return [r.name for r in self._snapshot]

    def reset(self) -> None:
        self._snapshot = []
        self._cursor = -1

    async def _load(self) -> None:
        records = await self._source.list_snapshot()
        self._snapshot = filter_eligible(records, self._whitelist)
        self._cursor = -1
        logger.info("Loaded rotation snapshot", fetched=len(records), eligible=len(self._snapshot))

    async def next(self) -> ContainerRecord | None:
        for _ in range(_MAX_PASSES):
            if not self._snapshot:
                await self._load()
                if not self._snapshot:
                    self.reset()
                    return None

            self._cursor += 1
            if self._cursor < len(self._snapshot):
                return self._snapshot[self._cursor]

            self.reset()
        return None
