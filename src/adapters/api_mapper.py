"""Instrument-API-to-core model mapping adapter.

This keeps the API's PascalCase JSON payloads out of the core engine. A
malformed record is skipped with a warning instead of failing its batch.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from core.models import (
    AutofocusResult,
    Event,
    EventKind,
    FrameType,
    Image,
    MountStatus,
    SequenceInfo,
)

LOGGER = logging.getLogger(__name__)

_FRACTION = re.compile(r"(?<=:\d\d)\.(\d+)")

# Containers that structure a sequence but are never an observation target.
SYSTEM_CONTAINERS = (
    "Start_Container",
    "End_Container",
    "Targets_Container",
    "Basic Sequence Startup_Container",
    "Basic Sequence End_Container",
    "Target Imaging Instructions_Container",
    "Parallel End of Sequence Instructions_Container",
)

_ACTIVE_STATUSES = {"RUNNING", "Active"}


def parse_timestamp(raw: str) -> datetime:
    """Parse an API timestamp, normalising to an aware datetime.

    The API emits anywhere from one to seven fractional digits and sometimes a trailing Z;
    naive values are taken as UTC.
    """

    text = _FRACTION.sub(lambda match: "." + match.group(1)[:6].ljust(6, "0"), raw.strip())
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _object(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _float(value: Any, default: float = 0.0) -> float:
    # Fitting values come back as the string "NaN" when a curve failed.
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def map_event(record: dict[str, Any]) -> Event:
    if not isinstance(record, dict):
        raise TypeError(f"expected an object, got {type(record).__name__}")
    raw_kind = str(record["Event"])
    details = {key: value for key, value in record.items() if key not in ("Time", "Event")}
    return Event(
        timestamp=parse_timestamp(str(record["Time"])),
        kind=EventKind.parse(raw_kind),
        raw_kind=raw_kind,
        details=details,
    )


def map_image(index: int, record: dict[str, Any]) -> Image:
    if not isinstance(record, dict):
        raise TypeError(f"expected an object, got {type(record).__name__}")
    raw_type = str(record.get("ImageType") or "")
    return Image(
        index=index,
        timestamp=parse_timestamp(str(record["Date"])),
        filter=str(record.get("Filter") or ""),
        exposure_time=_float(record.get("ExposureTime")),
        frame_type=FrameType.parse(raw_type),
        raw_type=raw_type,
        mean=_float(record.get("Mean")),
        median=_float(record.get("Median")),
        stdev=_float(record.get("StDev")),
        stars=int(record.get("Stars") or 0),
        hfr=_float(record.get("HFR")),
        temperature=_float(record.get("Temperature"), default=math.nan),
        camera=str(record.get("CameraName") or ""),
        telescope=str(record.get("TelescopeName") or ""),
        rms_text=str(record.get("RmsText") or ""),
    )


def map_events(records: Iterable[dict[str, Any]]) -> list[Event]:
    events: list[Event] = []
    for record in records:
        try:
            events.append(map_event(record))
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            LOGGER.warning("Skipping malformed event record %r: %s", record, exc)
    return events


def map_images(records: Iterable[dict[str, Any]]) -> list[Image]:
    # The position in the full history is the index the thumbnail endpoint expects.
    images: list[Image] = []
    for index, record in enumerate(records):
        try:
            images.append(map_image(index, record))
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            LOGGER.warning("Skipping malformed image record %s: %s", index, exc)
    return images


def _is_system_container(name: str) -> bool:
    return any(system in name for system in SYSTEM_CONTAINERS)


def find_sequence_target(items: Iterable[Any]) -> Optional[str]:
    """Return the first running target container name, searched depth-first."""

    for item in items:
        if not isinstance(item, dict):
            continue
        name = item.get("Name")
        status = item.get("Status")
        if isinstance(name, str) and isinstance(status, str):
            if (
                status in _ACTIVE_STATUSES
                and name.endswith("_Container")
                and not _is_system_container(name)
            ):
                target = name[: -len("_Container")]
                if target:
                    return target
            nested = item.get("Items")
            if isinstance(nested, list):
                found = find_sequence_target(nested)
                if found:
                    return found
    return None


def find_meridian_flip_hours(items: list[Any]) -> Optional[float]:
    if not items or not isinstance(items[0], dict):
        return None
    for trigger in items[0].get("GlobalTriggers") or []:
        if isinstance(trigger, dict) and trigger.get("Name") == "Meridian Flip_Trigger":
            value = trigger.get("TimeToFlip")
            if isinstance(value, (int, float)):
                return float(value)
    return None


def map_sequence(response: Any) -> SequenceInfo:
    items = response if isinstance(response, list) else []
    return SequenceInfo(
        target_name=find_sequence_target(items),
        meridian_flip_hours=find_meridian_flip_hours(items),
    )


def map_mount(response: dict[str, Any]) -> MountStatus:
    return MountStatus(
        connected=bool(response.get("Connected")),
        ra=str(response.get("RightAscensionString") or ""),
        dec=str(response.get("DeclinationString") or ""),
        altitude=str(response.get("AltitudeString") or ""),
        azimuth=str(response.get("AzimuthString") or ""),
        side_of_pier=str(response.get("SideOfPier") or ""),
        tracking_enabled=bool(response.get("TrackingEnabled")),
        parked=bool(response.get("AtPark")),
    )


def map_autofocus(response: dict[str, Any], success: bool = True) -> AutofocusResult:
    calculated = _object(response.get("CalculatedFocusPoint"))
    initial = _object(response.get("InitialFocusPoint"))
    r_squares = _object(response.get("RSquares"))
    points = response.get("MeasurePoints")
    if not isinstance(points, list):
        points = []
    fits = [
        _float(r_squares.get(name), default=math.nan)
        for name in ("Quadratic", "Hyperbolic", "LeftTrend", "RightTrend")
    ]
    valid_fits = [value for value in fits if not math.isnan(value)]
    return AutofocusResult(
        success=success,
        filter=str(response.get("Filter") or ""),
        method=str(response.get("Method") or ""),
        duration=str(response.get("Duration") or ""),
        temperature=_float(response.get("Temperature"), default=math.nan),
        focuser_name=str(response.get("AutoFocuserName") or ""),
        initial_position=int(initial.get("Position") or 0),
        calculated_position=int(calculated.get("Position") or 0),
        hfr=_float(calculated.get("Value"), default=math.nan),
        calculated_error=_float(calculated.get("Error")),
        measurement_count=len(points),
        best_r_squared=max(valid_fits) if valid_fits else float("-inf"),
    )
