"""Deduplication helpers (core domain)."""

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timedelta
from typing import Callable, Generic, Optional, Protocol, TypeVar

from core.models import Event, Image


class _Timestamped(Protocol):
    timestamp: datetime


T = TypeVar("T", bound=_Timestamped)


def _digest(payload: str) -> str:
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def event_fingerprint(event: Event) -> str:
    """Return the identity hash of an event (timestamp + kind + details)."""

    # The raw kind is used so two unknown kinds never collapse into OTHER.
    details = json.dumps(event.details, sort_keys=True, default=str)
    return _digest(f"{event.timestamp.isoformat()}|{event.raw_kind}|{details}")


def image_fingerprint(image: Image) -> str:
    """Return the identity hash of a captured frame."""

    return _digest(f"{image.timestamp.isoformat()}|{image.camera}")


class Deduplicator(Generic[T]):
    """Admit each fingerprint once, retaining only a sliding time window.

    The window is measured against the newest timestamp seen rather than the
    local clock, because the instrument may run on a different clock. Items
    older than the window horizon are rejected outright: they are history
    that was either seeded or already pruned.
    """

    def __init__(
        self,
        fingerprint: Callable[[T], str],
        window: Optional[timedelta] = None,
    ) -> None:
        self._fingerprint = fingerprint
        self._window = window
        self._seen: dict[str, datetime] = {}
        self._newest: Optional[datetime] = None

    def __len__(self) -> int:
        return len(self._seen)

    @property
    def horizon(self) -> Optional[datetime]:
        """Oldest timestamp still eligible for admission, if bounded."""

        if self._window is None or self._newest is None:
            return None
        return self._newest - self._window

    def admit(self, item: T) -> bool:
        """Return True the first time an item is offered, False afterwards."""

        horizon = self.horizon
        if horizon is not None and item.timestamp < horizon:
            return False

        key = self._fingerprint(item)
        if key in self._seen:
            return False

        self._seen[key] = item.timestamp
        if self._newest is None or item.timestamp > self._newest:
            self._newest = item.timestamp
            self._prune()
        return True

    def seed(self, items: list[T]) -> None:
        """Mark historical items as seen without reporting them."""

        for item in items:
            self.admit(item)

    def _prune(self) -> None:
        horizon = self.horizon
        if horizon is None:
            return
        stale = [key for key, ts in self._seen.items() if ts < horizon]
        for key in stale:
            del self._seen[key]
