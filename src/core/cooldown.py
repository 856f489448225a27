"""Throttling of image-capture notifications."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from core.models import Image


@dataclass(frozen=True)
class Emit:
    """Send this image; `skipped` images were swallowed since the last one."""

    skipped: int


@dataclass(frozen=True)
class Skip:
    """Inside the cooldown window; `remaining` seconds until the next emit."""

    remaining: float


CooldownDecision = Union[Emit, Skip]


class ImageCooldownGate:
    """Allow at most one image notification per cooldown window.

    Not safe for concurrent use; the orchestrator is its only caller.
    """

    def __init__(self, cooldown_seconds: float) -> None:
        self._cooldown = cooldown_seconds
        self._last_emission: Optional[float] = None
        self._skipped = 0

    @property
    def skipped(self) -> int:
        return self._skipped

    def decide(self, image: Image, now: float) -> CooldownDecision:
        """Decide for one image, in arrival order. `now` is a monotonic clock."""

        if self._last_emission is None or now - self._last_emission >= self._cooldown:
            decision = Emit(skipped=self._skipped)
            self._skipped = 0
            self._last_emission = now
            return decision

        self._skipped += 1
        return Skip(remaining=self._cooldown - (now - self._last_emission))
