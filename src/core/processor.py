"""Core poll-cycle orchestrator.

This module is integration-agnostic. It only relies on ports for the data
source and notification sinks, enabling other instruments or chat backends
without changes here.

Each cycle follows a strict order:
1) Fetch every data category concurrently; a failed category is skipped
2) Drop redundant events, then admit only unseen ones
3) Fold admitted target-start events and the sequence into the target
4) Build notifications for admitted events and the target change
5) Gate unseen images through the cooldown
6) Broadcast every message to all sinks, in order
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from core.broadcast import SinkSet
from core.config import MonitorConfig
from core.cooldown import Emit, ImageCooldownGate
from core.dedup import Deduplicator, event_fingerprint, image_fingerprint
from core.errors import FetchError
from core.messages import (
    MOUNT_EVENT_KINDS,
    autofocus_message,
    event_message,
    image_message,
    mount_event_message,
    startup_message,
    target_message,
)
from core.models import (
    AutofocusResult,
    ChatMessage,
    Event,
    EventKind,
    Image,
    MountStatus,
    SequenceInfo,
    Target,
)
from core.ports import DataSourcePort
from core.targets import TargetTracker

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class MonitorState(Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    PROCESSING = "processing"
    DISPATCHING = "dispatching"
    SLEEPING = "sleeping"
    STOPPED = "stopped"


@dataclass
class CycleSnapshot:
    """Everything fetched in one cycle; None means the category failed."""

    events: Optional[list[Event]] = None
    images: Optional[list[Image]] = None
    sequence: Optional[SequenceInfo] = None
    mount: Optional[MountStatus] = None
    autofocus: Optional[AutofocusResult] = None
    failed: list[str] = field(default_factory=list)


@dataclass
class CycleReport:
    failed_categories: list[str] = field(default_factory=list)
    events_admitted: int = 0
    images_emitted: int = 0
    images_skipped: int = 0
    target_changed: bool = False
    messages_sent: int = 0
    delivery_failures: int = 0


def is_redundant(event: Event) -> bool:
    """A filter change that did not change the filter carries no news."""

    if event.kind is not EventKind.FILTERWHEEL_CHANGED:
        return False
    new = event.details.get("New")
    previous = event.details.get("Previous")
    if not isinstance(new, dict) or not isinstance(previous, dict):
        return False
    return new.get("Name") == previous.get("Name")


class ObservatoryMonitor:
    """Owns all notification state and drives the poll cycle.

    There is exactly one instance per process; it is the only mutator of the
    deduplicators, target tracker and cooldown gate, so no locking is used.
    """

    def __init__(
        self,
        source: DataSourcePort,
        sinks: SinkSet,
        config: MonitorConfig,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        window = None
        if config.dedup_window_hours is not None:
            window = timedelta(hours=config.dedup_window_hours)
        self._source = source
        self._sinks = sinks
        self._config = config
        self._clock = clock
        self._events: Deduplicator[Event] = Deduplicator(event_fingerprint, window)
        self._images: Deduplicator[Image] = Deduplicator(image_fingerprint, window)
        self._targets = TargetTracker()
        self._cooldown = ImageCooldownGate(config.image_cooldown_seconds)
        self._meridian_flip_hours: Optional[float] = None
        self._seeded = False
        self.state = MonitorState.IDLE

    @property
    def current_target(self) -> Optional[Target]:
        return self._targets.current

    @property
    def seeded(self) -> bool:
        return self._seeded

    async def seed(self) -> None:
        """Load history as already-seen state before the first live cycle.

        Raises FetchError when the event or image history cannot be loaded;
        starting without it would replay the whole history as new.
        """

        # Join every fetch before failing so no history request is left running.
        events, images, sequence, mount = await asyncio.gather(
            self._source.list_events(),
            self._source.list_images(include_all=True),
            self._fetch("sequence", self._source.current_sequence),
            self._fetch("mount", self._source.mount_status),
            return_exceptions=True,
        )
        for result in (events, images, sequence, mount):
            if isinstance(result, BaseException):
                raise result

        self._events.seed(events)
        self._images.seed(images)
        if sequence is not None:
            self._meridian_flip_hours = sequence.meridian_flip_hours
        self._targets.seed(events, sequence.target_name if sequence else None)
        self._seeded = True
        LOGGER.info("Baseline: %s events, %s images", len(self._events), len(self._images))

        if self._config.startup_message and len(self._sinks):
            await self._sinks.broadcast(
                startup_message(
                    target=self._targets.current,
                    events_seen=len(events),
                    images_seen=len(images),
                    sink_count=len(self._sinks),
                    meridian_flip_hours=self._meridian_flip_hours,
                    mount=mount,
                )
            )

    async def run_cycle(self) -> CycleReport:
        """Run one Fetching -> Processing -> Dispatching pass."""

        report = CycleReport()

        self.state = MonitorState.FETCHING
        snapshot = await self._fetch_all()
        report.failed_categories = list(snapshot.failed)

        self.state = MonitorState.PROCESSING
        messages = await self._process_events(snapshot, report)
        messages.extend(await self._process_images(snapshot, report))

        self.state = MonitorState.DISPATCHING
        for message in messages:
            outcomes = await self._sinks.broadcast(message)
            report.messages_sent += 1
            report.delivery_failures += sum(1 for outcome in outcomes if not outcome.ok)
        return report

    async def run(self, stop: asyncio.Event) -> None:
        """Seed, then poll until `stop` is set. Never raises on cycle errors."""

        while not self._seeded and not stop.is_set():
            try:
                await self.seed()
            except FetchError as exc:
                LOGGER.warning("Could not load history, retrying: %s", exc)
            except Exception:
                LOGGER.exception("Unexpected error loading history, retrying")
            else:
                break
            if await self._sleep(stop):
                break

        while not stop.is_set():
            try:
                report = await self.run_cycle()
                LOGGER.debug("Cycle complete: %s", report)
            except Exception:
                LOGGER.exception("Unexpected error during poll cycle")
            if await self._sleep(stop):
                break

        self.state = MonitorState.STOPPED
        LOGGER.info("Monitor stopped")

    async def _sleep(self, stop: asyncio.Event) -> bool:
        """Wait one poll interval; return True if stop was requested."""

        self.state = MonitorState.SLEEPING
        try:
            await asyncio.wait_for(stop.wait(), timeout=self._config.poll_interval_seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def _fetch(self, category: str, call: Callable[[], Awaitable[T]]) -> Optional[T]:
        try:
            return await call()
        except FetchError as exc:
            LOGGER.warning("Skipping %s this cycle: %s", category, exc.reason)
        except Exception:
            LOGGER.exception("Unexpected error fetching %s; skipping it this cycle", category)
        return None

    async def _fetch_all(self) -> CycleSnapshot:
        since = self._events.horizon
        categories: dict[str, Callable[[], Awaitable[object]]] = {
            "events": lambda: self._source.list_events(since=since),
            "images": lambda: self._source.list_images(include_all=True),
            "sequence": self._source.current_sequence,
            "mount": self._source.mount_status,
            "autofocus": self._source.latest_autofocus,
        }
        results = await asyncio.gather(
            *(self._fetch(name, call) for name, call in categories.items())
        )
        snapshot = CycleSnapshot(**dict(zip(categories, results)))
        # A missing autofocus result is a valid answer, not a failure.
        snapshot.failed = [
            name for name, value in zip(categories, results) if value is None and name != "autofocus"
        ]
        return snapshot

    async def _process_events(self, snapshot: CycleSnapshot, report: CycleReport) -> list[ChatMessage]:
        if snapshot.sequence is not None:
            self._meridian_flip_hours = snapshot.sequence.meridian_flip_hours

        admitted: list[Event] = []
        for event in sorted(snapshot.events or [], key=lambda item: item.timestamp):
            if is_redundant(event):
                continue
            if not self._events.admit(event):
                continue
            LOGGER.info("New event %s at %s", event.raw_kind, event.timestamp.isoformat())
            admitted.append(event)
        report.events_admitted = len(admitted)

        sequence_target = snapshot.sequence.target_name if snapshot.sequence else None
        update = self._targets.observe(admitted, sequence_target)

        messages: list[ChatMessage] = []
        if update.changed and update.current is not None:
            report.target_changed = True
            messages.append(
                target_message(update.current, update.previous, self._meridian_flip_hours, snapshot.mount)
            )

        for event in admitted:
            # Target starts are reported through the target change, saved
            # images through the image path.
            if event.kind.is_target_start or event.kind is EventKind.IMAGE_SAVE:
                continue
            if event.kind is EventKind.AUTOFOCUS_FINISHED:
                messages.append(await self._autofocus_notification(event, snapshot.autofocus))
            elif event.kind in MOUNT_EVENT_KINDS:
                messages.append(mount_event_message(event, self._targets.current, snapshot.mount))
            else:
                messages.append(event_message(event))
        return messages

    async def _autofocus_notification(
        self, event: Event, prefetched: Optional[AutofocusResult]
    ) -> ChatMessage:
        # The prefetched result may predate the run that just finished.
        result = await self._fetch("autofocus detail", self._source.latest_autofocus)
        result = result or prefetched
        if result is None or not result.success:
            return event_message(event)
        return autofocus_message(result)

    async def _process_images(self, snapshot: CycleSnapshot, report: CycleReport) -> list[ChatMessage]:
        messages: list[ChatMessage] = []
        for image in snapshot.images or []:
            if not self._images.admit(image):
                continue
            decision = self._cooldown.decide(image, self._clock())
            if not isinstance(decision, Emit):
                report.images_skipped += 1
                LOGGER.info(
                    "New %s frame #%s skipped (cooldown: %.0fs remaining)",
                    image.frame_type.value,
                    image.index,
                    decision.remaining,
                )
                continue

            report.images_emitted += 1
            LOGGER.info("New %s frame #%s (%s skipped since last)", image.frame_type.value, image.index, decision.skipped)
            message = image_message(image, decision.skipped, self._targets.current, self._meridian_flip_hours)
            if self._config.attach_thumbnails and len(self._sinks):
                message.image = await self._fetch("thumbnail", lambda: self._source.thumbnail(image.index))
            messages.append(message)
        return messages
