"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
Construction fails with ConfigError, so an invalid setup never reaches the
poll loop.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from core.errors import ConfigError


@dataclass(frozen=True)
class ApiConfig:
    """Connection settings for the instrument-control API."""

    base_url: str
    timeout_seconds: float = 30.0
    retry_attempts: int = 3

    def __post_init__(self) -> None:
        if not self.base_url.startswith(("http://", "https://")):
            raise ConfigError(f"api.base_url must start with http:// or https:// (got {self.base_url!r})")
        if not 0 < self.timeout_seconds <= 300:
            raise ConfigError("api.timeout_seconds must be between 0 and 300")
        if not 0 <= self.retry_attempts <= 10:
            raise ConfigError("api.retry_attempts must be between 0 and 10")


@dataclass(frozen=True)
class MonitorConfig:
    """Poll-loop settings consumed by the orchestrator."""

    poll_interval_seconds: float = 5.0
    image_cooldown_seconds: float = 60.0
    # None keeps every fingerprint for the life of the process.
    dedup_window_hours: Optional[float] = 24.0
    attach_thumbnails: bool = True
    startup_message: bool = True

    def __post_init__(self) -> None:
        if self.poll_interval_seconds <= 0:
            raise ConfigError("monitor.poll_interval_seconds must be positive")
        if self.image_cooldown_seconds < 0:
            raise ConfigError("monitor.image_cooldown_seconds must not be negative")
        if self.dedup_window_hours is not None and self.dedup_window_hours <= 0:
            raise ConfigError("monitor.dedup_window_hours must be positive or null")
