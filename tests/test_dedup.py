from __future__ import annotations

from datetime import datetime, timedelta, timezone

from core.dedup import Deduplicator, event_fingerprint, image_fingerprint
from core.models import Event, EventKind, FrameType, Image


def _event(minute: int, kind: str = "GUIDER-START", **details) -> Event:
    return Event(
        timestamp=datetime(2024, 3, 1, 22, minute, tzinfo=timezone.utc),
        kind=EventKind.parse(kind),
        raw_kind=kind,
        details=details,
    )


def _image(when: datetime, camera: str = "ZWO ASI2600MM") -> Image:
    return Image(
        index=0,
        timestamp=when,
        filter="Ha",
        exposure_time=300.0,
        frame_type=FrameType.LIGHT,
        raw_type="LIGHT",
        mean=1200.0,
        median=1100.0,
        stdev=80.0,
        stars=950,
        hfr=2.1,
        temperature=-10.0,
        camera=camera,
    )


def test_event_admitted_once_across_consecutive_fetches() -> None:
    dedup: Deduplicator[Event] = Deduplicator(event_fingerprint)
    first_fetch = [_event(1), _event(2)]
    second_fetch = [_event(1), _event(2), _event(3)]

    admitted = [event for event in first_fetch if dedup.admit(event)]
    admitted += [event for event in second_fetch if dedup.admit(event)]

    assert admitted == [_event(1), _event(2), _event(3)]


def test_fingerprint_covers_details_and_raw_kind() -> None:
    assert event_fingerprint(_event(1, Filter="Ha")) != event_fingerprint(_event(1, Filter="OIII"))
    assert event_fingerprint(_event(1, "FOO-BAR")) != event_fingerprint(_event(1, "BAZ-QUX"))
    # Detail order must not matter.
    a = Event(_event(1).timestamp, EventKind.OTHER, "X", {"a": 1, "b": 2})
    b = Event(_event(1).timestamp, EventKind.OTHER, "X", {"b": 2, "a": 1})
    assert event_fingerprint(a) == event_fingerprint(b)


def test_image_fingerprint_uses_timestamp_and_camera() -> None:
    when = datetime(2024, 3, 1, 23, 0, tzinfo=timezone.utc)
    assert image_fingerprint(_image(when)) == image_fingerprint(_image(when))
    assert image_fingerprint(_image(when)) != image_fingerprint(_image(when, camera="QHY268M"))


def test_seed_marks_history_as_seen() -> None:
    dedup: Deduplicator[Event] = Deduplicator(event_fingerprint)
    dedup.seed([_event(1), _event(2)])

    assert len(dedup) == 2
    assert not dedup.admit(_event(2))
    assert dedup.admit(_event(3))


def test_window_prunes_old_fingerprints_and_rejects_stale_items() -> None:
    start = datetime(2024, 3, 1, 20, 0, tzinfo=timezone.utc)
    dedup: Deduplicator[Image] = Deduplicator(image_fingerprint, timedelta(hours=1))

    assert dedup.admit(_image(start))
    assert dedup.horizon == start - timedelta(hours=1)

    later = start + timedelta(hours=2)
    assert dedup.admit(_image(later))
    assert len(dedup) == 1
    # Older than the horizon: never re-reported even though it was pruned.
    assert not dedup.admit(_image(start))


def test_unbounded_dedup_has_no_horizon() -> None:
    dedup: Deduplicator[Event] = Deduplicator(event_fingerprint)
    dedup.admit(_event(5))
    assert dedup.horizon is None
