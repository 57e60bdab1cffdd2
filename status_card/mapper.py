from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

from status_card.models import CardModel, ContainerRecord, StatusState, UsageSample
from status_card.text import extract_health, extract_uptime, hours_subtitle, parse_utc_timestamp, short_id


def build_usage_samples(history: Iterable[ContainerRecord], *, now: datetime | None = None) -> list[UsageSample]:
    """History rows -> chart samples, sorted ascending by timestamp."""
    ref = now if now is not None else datetime.now(timezone.utc)
    samples = [
        UsageSample(
            ts_utc=parse_utc_timestamp(h.timestamp, now=ref),
            cpu_percent=float(h.cpu_percent),
            memory_percent=float(h.memory_percent),
        )
        for h in history
    ]
    samples.sort(key=lambda s: s.ts_utc)
    return samples


def map_to_card(
    current: ContainerRecord,
    history: Iterable[ContainerRecord],
    hours: int,
    *,
    now: datetime | None = None,
) -> CardModel:
    online = current.is_running
    state = StatusState.ONLINE if online else StatusState.OFFLINE

    uptime = extract_uptime(current.status) or ("Up" if online else "Down")
    health = extract_health(current.status) or ("healthy" if online else "unhealthy")

    # Telemetry reports memory in MB.
    used_gb = current.memory_current / 1024.0
    total_gb = current.memory_max / 1024.0

    return CardModel(
        name=current.name,
        id_short=short_id(current.id),
        state=state,
        status_text="Online" if online else "Offline",
        uptime_text=uptime,
        health_text=health,
        cpu_now_percent=float(current.cpu_percent),
        memory_used_gb=round(used_gb, 2),
        memory_total_gb=round(total_gb, 2),
        subtitle=hours_subtitle(hours),
        usage=build_usage_samples(history, now=now),
    )
