"""Configuration management for the status card service."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from status_card.errors import ConfigError

DEFAULT_CONFIG_PATH = "config/status-card.yaml"

# env var -> (settings field, type)
_ENV_KEYS: dict[str, tuple[str, type]] = {
    "BASE_URL": ("base_url", str),
    "CONTAINER_WHITELIST": ("container_whitelist", str),
    "DISCORD_WEBHOOK_URL": ("discord_webhook_url", str),
    "STATUS_IMAGE_URL": ("status_image_url", str),
    "PUBLISH_ENABLED": ("publish_enabled", bool),
    "PUBLISH_INTERVAL_SECONDS": ("publish_interval_seconds", int),
    "PUBLISH_HOURS": ("publish_hours", int),
    "CACHE_TTL_SECONDS": ("cache_ttl_seconds", int),
    "STALE_GRACE_SECONDS": ("stale_grace_seconds", int),
    "DEFAULT_HOURS": ("default_hours", int),
    "REQUEST_TIMEOUT_SECONDS": ("request_timeout_seconds", float),
    "MESSAGE_ID_PATH": ("message_id_path", str),
    "IMAGE_WIDTH": ("image_width", int),
    "IMAGE_HEIGHT": ("image_height", int),
    "LOG_LEVEL": ("log_level", str),
    "HOST": ("host", str),
    "PORT": ("port", int),
}


def _parse_bool(raw: str) -> bool:
    return str(raw).strip().lower() in {"1", "true", "yes", "y", "on"}


def split_csv(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        items = [str(x) for x in raw]
    else:
        items = str(raw).split(",")
    return [s.strip() for s in items if s and s.strip()]


class Settings(BaseModel):
    """Service settings. Defaults < YAML file < environment."""

    # Upstream telemetry
    base_url: str = Field(default="", description="Telemetry API base URL")
    request_timeout_seconds: float = Field(default=3.0, gt=0, description="Telemetry request timeout")

    # Rotation
    container_whitelist: list[str] = Field(default_factory=list, description="Names or id prefixes; empty = all")
    whitelist_configured: bool = Field(default=False, description="Whitelist was explicitly provided")

    # Cache / image
    cache_ttl_seconds: int = Field(default=60, ge=1, description="Rendered image cache window")
    stale_grace_seconds: int = Field(default=300, ge=0, description="Serve expired image this long on upstream failure")
    default_hours: int = Field(default=24, ge=1, le=168, description="History window when ?h is not given")
    image_width: int = Field(default=640, ge=200)
    image_height: int = Field(default=420, ge=200)

    # Webhook publisher
    publish_enabled: bool = Field(default=True, description="Run the periodic webhook publisher")
    discord_webhook_url: str | None = Field(default=None, description="Webhook URL for the status message")
    status_image_url: str | None = Field(default=None, description="Embed this URL instead of attaching the PNG")
    publish_interval_seconds: int = Field(default=300, ge=10, description="Publish timer interval")
    publish_hours: int = Field(default=6, ge=1, le=168, description="History window for published cards")
    message_id_path: str = Field(default="data/message-id.txt", description="Persisted message id file")

    # Runtime
    log_level: str = Field(default="INFO", description="Logging level")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080)

    @field_validator("container_whitelist", mode="before")
    @classmethod
    def _split_whitelist(cls, value: Any) -> list[str]:
        return split_csv(value)

    @field_validator("base_url", mode="before")
    @classmethod
    def _strip_base_url(cls, value: Any) -> str:
        return str(value or "").strip()

    @field_validator("discord_webhook_url", "status_image_url", mode="before")
    @classmethod
    def _blank_is_none(cls, value: Any) -> str | None:
        s = str(value or "").strip()
        return s or None

    def validate_required(self) -> None:
        missing: list[str] = []
        if not self.base_url:
            missing.append("BASE_URL")
        if not self.whitelist_configured:
            missing.append("CONTAINER_WHITELIST")
        if self.publish_enabled and not self.discord_webhook_url:
            missing.append("DISCORD_WEBHOOK_URL")
        if missing:
            raise ConfigError(missing)


def load_settings(config_path: str | None = None, *, env_file: str | None = ".env") -> Settings:
    """Load settings from an optional YAML file and the environment (including `.env`)."""
    if env_file:
        load_dotenv(env_file, override=False)

    if config_path is None:
        config_path = os.getenv("STATUS_CARD_CONFIG", DEFAULT_CONFIG_PATH)

    config_data: dict[str, Any] = {}
    path = Path(config_path)
    if path.exists():
        with path.open("r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ConfigError(message=f"Config file {path} must contain a mapping")
        config_data = dict(loaded)

    for env_key, (field_name, kind) in _ENV_KEYS.items():
        raw = os.getenv(env_key)
        if raw is None:
            continue
        try:
            if kind is bool:
                config_data[field_name] = _parse_bool(raw)
            elif kind is int:
                config_data[field_name] = int(raw.strip())
            elif kind is float:
                config_data[field_name] = float(raw.strip())
            else:
                config_data[field_name] = raw
        except ValueError as exc:
            raise ConfigError(message=f"Invalid value for {env_key}: {raw!r}") from exc

    if "container_whitelist" in config_data:
        config_data["whitelist_configured"] = True

    try:
        return Settings(**config_data)
    except ValidationError as exc:
        raise ConfigError(message=f"Invalid configuration: {exc}") from exc
