from __future__ import annotations


class StatusCardError(Exception):
    """Base class for all status-card failures."""


class ConfigError(StatusCardError):
    """Required configuration is missing or invalid."""

    def __init__(self, missing: list[str] | None = None, message: str | None = None) -> None:
        self.missing = list(missing or [])
        if message is None:
            message = "Missing required configuration: " + ", ".join(self.missing)
        super().__init__(message)


class UpstreamUnavailable(StatusCardError):
    """Telemetry API could not be reached or returned an unusable response."""


class SelectorNotFound(StatusCardError):
    """A pinned selector matched no current container."""

    def __init__(self, selector: str) -> None:
        self.selector = selector
        super().__init__(f"Container not found: {selector!r}")


class PublishTransportError(StatusCardError):
    """Webhook create/edit failed for a reason other than a missing message."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)
