"""Resolution of the current observation target.

Two sources compete: the running sequence reports a target container, and
target-start events announce the target a scheduler just switched to. The
newest target-start event wins over the sequence until the sequence itself
reports a different target than it did before.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from core.models import Event, Target, TargetCoordinates, TargetSource

LOGGER = logging.getLogger(__name__)

# Placeholder name the scheduler uses for instruction-only containers.
PLACEHOLDER_TARGET = "Sequential Instruction Set"


@dataclass(frozen=True)
class TargetUpdate:
    """Result of one observation: the resolved target and the one it replaced."""

    current: Optional[Target]
    previous: Optional[Target]
    changed: bool


def target_from_event(event: Event) -> Optional[Target]:
    """Build a Target from a target-start event, or None if it defines none."""

    if not event.kind.is_target_start:
        return None
    details = event.details
    name = str(details.get("TargetName") or "").strip()
    if not name or name == PLACEHOLDER_TARGET:
        return None

    coordinates = None
    raw_coords = details.get("Coordinates")
    if isinstance(raw_coords, dict):
        ra = raw_coords.get("RAString")
        dec = raw_coords.get("DecString")
        if ra and dec:
            coordinates = TargetCoordinates(ra=str(ra), dec=str(dec))

    rotation = details.get("Rotation")
    project = details.get("ProjectName")
    return Target(
        name=name,
        source=TargetSource.TARGET_START_EVENT,
        coordinates=coordinates,
        rotation=float(rotation) if isinstance(rotation, (int, float)) else None,
        project=str(project) if project else None,
    )


def _sequence_name(name: Optional[str]) -> Optional[str]:
    if not name or name == PLACEHOLDER_TARGET:
        return None
    return name


def target_from_sequence(name: Optional[str]) -> Optional[Target]:
    name = _sequence_name(name)
    if name is None:
        return None
    return Target(name=name, source=TargetSource.SEQUENCE)


class TargetTracker:
    """Keeps the single authoritative target across poll cycles."""

    def __init__(self) -> None:
        self._current: Optional[Target] = None
        self._override: Optional[Target] = None
        self._override_time: Optional[datetime] = None
        self._last_sequence_name: Optional[str] = None

    @property
    def current(self) -> Optional[Target]:
        return self._current

    def seed(self, history: Iterable[Event], sequence_target: Optional[str]) -> Optional[Target]:
        """Initialise from history without reporting a change."""

        self._apply_events(history)
        sequence_target = _sequence_name(sequence_target)
        self._last_sequence_name = sequence_target
        self._current = self._override or target_from_sequence(sequence_target)
        if self._current is not None:
            LOGGER.info("Seeded target %s (from %s)", self._current.name, self._current.source.value)
        return self._current

    def observe(self, events: Iterable[Event], sequence_target: Optional[str]) -> TargetUpdate:
        """Fold newly admitted events and the sequence report into the target.

        `sequence_target` is None when the sequence could not be fetched or
        reports no target; that never clears an already resolved target.
        """

        saw_start = self._apply_events(events)
        sequence_target = _sequence_name(sequence_target)

        if sequence_target is not None and sequence_target != self._last_sequence_name:
            # A newly reported sequence target is a newer authoritative source
            # unless a target-start event in this same batch already spoke.
            known_before = self._last_sequence_name is not None
            if known_before and not saw_start and self._override is not None:
                if self._override.name != sequence_target:
                    self._override = None
            self._last_sequence_name = sequence_target

        resolved = self._resolve()
        previous = self._current
        if resolved is None:
            return TargetUpdate(current=previous, previous=previous, changed=False)

        changed = previous is None or not previous.same_as(resolved)
        self._current = resolved
        if changed:
            LOGGER.info(
                "Target changed: %s -> %s",
                previous.name if previous else "none",
                resolved.name,
            )
        return TargetUpdate(current=resolved, previous=previous, changed=changed)

    def _apply_events(self, events: Iterable[Event]) -> bool:
        saw_start = False
        for event in sorted(events, key=lambda item: item.timestamp):
            target = target_from_event(event)
            if target is None:
                continue
            if self._override_time is not None and event.timestamp < self._override_time:
                continue
            self._override = target
            self._override_time = event.timestamp
            saw_start = True
        return saw_start

    def _resolve(self) -> Optional[Target]:
        if self._override is not None:
            return self._override
        sequence = target_from_sequence(self._last_sequence_name)
        if sequence is None:
            return None
        # Keep the richer record when the sequence names the same target.
        if self._current is not None and self._current.name == sequence.name:
            return self._current
        return sequence
