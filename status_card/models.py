"""Data models shared by the telemetry client, mapper, renderer and publisher."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ContainerRecord(BaseModel):
    """One container row as returned by `/api/containers/stats/`."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str = ""
    name: str = ""

    cpu_current: float = 0.0
    cpu_max: float = 0.0
    cpu_percent: float = 0.0

    memory_current: float = Field(0.0, description="MB")
    memory_max: float = Field(0.0, description="MB")
    memory_percent: float = 0.0

    state: str = ""
    status: str = ""
    timestamp: str = ""

    @field_validator("id", "name", "state", "status", "timestamp", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value).strip()

    @field_validator(
        "cpu_current", "cpu_max", "cpu_percent", "memory_current", "memory_max", "memory_percent", mode="before"
    )
    @classmethod
    def _coerce_float(cls, value: Any) -> float:
        if value is None or value == "":
            return 0.0
        return value

    @property
    def is_running(self) -> bool:
        return self.state.lower() == "running"


class StatusState(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


@dataclass(frozen=True)
class UsageSample:
    ts_utc: datetime
    cpu_percent: float
    memory_percent: float


@dataclass(frozen=True)
class CardModel:
    name: str
    id_short: str
    state: StatusState
    status_text: str
    uptime_text: str
    health_text: str
    cpu_now_percent: float
    memory_used_gb: float
    memory_total_gb: float
    subtitle: str
    usage: list[UsageSample] = field(default_factory=list)


@dataclass(frozen=True)
class StatusImage:
    """Rendered card plus the context the publisher puts next to it."""

    png: bytes
    currently_showing: str | None
    online_servers: list[str]
    generated_at: datetime
