from __future__ import annotations

from datetime import datetime, timezone

from core.models import Event, EventKind, TargetCoordinates, TargetSource
from core.targets import PLACEHOLDER_TARGET, TargetTracker, target_from_event


def _target_start(second: int, name: str, kind: str = "TS-TARGETSTART") -> Event:
    return Event(
        timestamp=datetime(2024, 3, 1, 22, 0, second, tzinfo=timezone.utc),
        kind=EventKind.parse(kind),
        raw_kind=kind,
        details={
            "TargetName": name,
            "ProjectName": "Messier",
            "Rotation": 90,
            "Coordinates": {"RAString": "00:42:44", "DecString": "+41:16:09"},
        },
    )


def test_newest_target_start_wins_over_placeholder_sequence() -> None:
    tracker = TargetTracker()

    update = tracker.observe([_target_start(10, "M31"), _target_start(20, "M42")], PLACEHOLDER_TARGET)

    assert update.changed
    assert update.previous is None
    assert update.current is not None and update.current.name == "M42"


def test_target_start_sequence_transitions_skip_placeholder() -> None:
    tracker = TargetTracker()
    changes = []
    for event in (_target_start(10, "M31"), _target_start(20, "M42")):
        update = tracker.observe([event], PLACEHOLDER_TARGET)
        if update.changed:
            changes.append(update.current.name)
        # Quiet cycle in between must not report anything.
        assert not tracker.observe([], PLACEHOLDER_TARGET).changed

    assert changes == ["M31", "M42"]


def test_seed_suppresses_change_for_known_target() -> None:
    tracker = TargetTracker()
    seeded = tracker.seed([_target_start(10, "M31")], "M31")

    assert seeded is not None and seeded.name == "M31"
    assert seeded.source is TargetSource.TARGET_START_EVENT
    assert not tracker.observe([], "M31").changed


def test_sequence_without_events_resolves_target() -> None:
    tracker = TargetTracker()
    update = tracker.observe([], "NGC7000")

    assert update.changed
    assert update.current.source is TargetSource.SEQUENCE


def test_new_sequence_target_supersedes_older_override() -> None:
    tracker = TargetTracker()
    tracker.seed([_target_start(10, "M31")], "M31")

    update = tracker.observe([], "M81")

    assert update.changed
    assert update.previous.name == "M31"
    assert update.current.name == "M81"
    assert update.current.source is TargetSource.SEQUENCE


def test_target_start_in_same_batch_beats_sequence_change() -> None:
    tracker = TargetTracker()
    tracker.seed([], "M31")

    update = tracker.observe([_target_start(30, "M42")], "M81")

    assert update.current.name == "M42"


def test_failed_sequence_fetch_keeps_current_target() -> None:
    tracker = TargetTracker()
    tracker.seed([], "M31")

    update = tracker.observe([], None)

    assert not update.changed
    assert update.current.name == "M31"


def test_older_target_start_is_ignored() -> None:
    tracker = TargetTracker()
    tracker.seed([_target_start(20, "M42")], None)

    update = tracker.observe([_target_start(10, "M31")], None)

    assert not update.changed
    assert tracker.current.name == "M42"


def test_target_from_event_reads_details() -> None:
    target = target_from_event(_target_start(10, "M31", kind="TS-NEWTARGETSTART"))

    assert target is not None
    assert target.coordinates == TargetCoordinates(ra="00:42:44", dec="+41:16:09")
    assert target.rotation == 90.0
    assert target.project == "Messier"


def test_placeholder_target_start_defines_no_target() -> None:
    assert target_from_event(_target_start(10, PLACEHOLDER_TARGET)) is None


def test_target_start_for_same_sequence_target_only_adds_details() -> None:
    tracker = TargetTracker()
    tracker.seed([], "M31")

    update = tracker.observe([_target_start(30, "M31")], "M31")

    assert not update.changed
    assert tracker.current.coordinates == TargetCoordinates(ra="00:42:44", dec="+41:16:09")


def test_same_name_with_different_coordinates_is_a_change() -> None:
    tracker = TargetTracker()
    tracker.seed([_target_start(10, "Mosaic")], None)
    moved = _target_start(20, "Mosaic")
    moved = Event(
        timestamp=moved.timestamp,
        kind=moved.kind,
        raw_kind=moved.raw_kind,
        details={**moved.details, "Coordinates": {"RAString": "00:45:00", "DecString": "+41:00:00"}},
    )

    assert tracker.observe([moved], None).changed
