from __future__ import annotations

from datetime import datetime, timezone

SHORT_ID_LEN = 12


def extract_uptime(status: str) -> str | None:
    """
    "Up 26 hours (healthy)" -> "Up 26 hours"

    Without text before the parenthesis the whole status is kept. Returns None for an
    empty status so callers can pick an online/offline default.
    """
    s = str(status or "").strip()
    if not s:
        return None
    idx = s.find("(")
    if idx <= 0:
        return s
    return s[:idx].strip()


def extract_health(status: str) -> str | None:
    """
    "Up 26 hours (healthy)" -> "healthy"
    """
    s = str(status or "")
    a = s.find("(")
    if a < 0:
        return None
    b = s.find(")", a + 1)
    if b < 0:
        return None
    inner = s[a + 1 : b].strip()
    return inner or None


def short_id(container_id: str) -> str:
    cid = str(container_id or "")
    if len(cid) >= SHORT_ID_LEN:
        return cid[:SHORT_ID_LEN] + "..."
    return cid


def parse_utc_timestamp(value: str, *, now: datetime | None = None) -> datetime:
    """
    Parse a telemetry timestamp such as "2025-12-15T15:34:08".

    Naive values are UTC. Unparseable values map to `now` (current UTC time by default)
    so the chart keeps one point per history row.
    """
    s = str(value or "").strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return now if now is not None else datetime.now(timezone.utc)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def hours_subtitle(hours: int) -> str:
    n = int(hours)
    return f"Usage History (Last {n} hour{'' if n == 1 else 's'})"
