"""Single-flight TTL cache used by both the image endpoint and the publisher."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: T
    expires_at: float


class CacheFillGate(Generic[T]):
    """
    Double-checked, lazily expiring cache with one gate-wide lock.

    Concurrent callers for the same key share one in-flight build task. Builds for
    different keys are serialized by the lock, which is what lets the rotation state be
    mutated without its own synchronization.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}
        self._inflight: dict[str, asyncio.Task[T]] = {}
        self._lock = asyncio.Lock()

    @property
    def lock(self) -> asyncio.Lock:
        return self._lock

    def peek(self, key: str) -> T | None:
        entry = self._entries.get(key)
        if entry is None or entry.expires_at <= self._clock():
            return None
        return entry.value

    def peek_stale(self, key: str, max_age: float) -> T | None:
        """Value whose expiry passed less than `max_age` seconds ago; live values count too."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.expires_at >= float(max_age):
            return None
        return entry.value

    def ttl_remaining(self, key: str) -> float:
        entry = self._entries.get(key)
        if entry is None:
            return 0.0
        return max(0.0, entry.expires_at - self._clock())

    def clear(self) -> None:
        self._entries.clear()

    async def get_or_build(self, key: str, ttl: float, build_fn: Callable[[], Awaitable[T]]) -> T:
        cached = self.peek(key)
        if cached is not None:
            return cached

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._fill(key, ttl, build_fn), name=f"cache-fill:{key}")
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._on_done(k, t))

        # Shielded so a cancelled caller does not take the build down with it.
        return await asyncio.shield(task)

    def _on_done(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Cache build failed", key=key, error=f"{type(exc).__name__}: {exc}")

    async def _fill(self, key: str, ttl: float, build_fn: Callable[[], Awaitable[T]]) -> T:
        async with self._lock:
            cached = self.peek(key)
            if cached is not None:
                return cached

            started = self._clock()
            value = await build_fn()
            self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + float(ttl))
            logger.debug("Cache filled", key=key, ttl=ttl, build_seconds=round(self._clock() - started, 3))
            return value
