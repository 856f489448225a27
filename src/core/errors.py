"""Error taxonomy shared by the core and adapters."""

from __future__ import annotations


class StarwatchError(Exception):
    """Base class for all starwatch errors."""


class ConfigError(StarwatchError):
    """Required settings are missing or invalid. Fatal at startup."""


class FetchError(StarwatchError):
    """A data source call failed (network, parse, or protocol)."""

    def __init__(self, category: str, reason: str) -> None:
        super().__init__(f"{category}: {reason}")
        self.category = category
        self.reason = reason


class DeliveryError(StarwatchError):
    """A single sink failed to accept a message."""

    def __init__(self, sink: str, reason: str) -> None:
        super().__init__(f"{sink}: {reason}")
        self.sink = sink
        self.reason = reason
