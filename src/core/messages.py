"""Chat message builders.

Every notification the engine emits is assembled here so titles, colors and
field order stay consistent regardless of delivery channel.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Optional

from core.models import (
    AutofocusResult,
    ChatMessage,
    Color,
    Event,
    EventKind,
    FrameType,
    Image,
    MountStatus,
    Target,
    TargetSource,
)

_EVENT_COLORS: dict[EventKind, Color] = {
    EventKind.CAMERA_CONNECTED: Color.GREEN,
    EventKind.CAMERA_DISCONNECTED: Color.RED,
    EventKind.FILTERWHEEL_CONNECTED: Color.BLUE,
    EventKind.FILTERWHEEL_DISCONNECTED: Color.RED,
    EventKind.FILTERWHEEL_CHANGED: Color.BLUE,
    EventKind.MOUNT_CONNECTED: Color.GREEN,
    EventKind.MOUNT_DISCONNECTED: Color.RED,
    EventKind.MOUNT_PARKED: Color.YELLOW,
    EventKind.MOUNT_UNPARKED: Color.YELLOW,
    EventKind.MOUNT_BEFORE_FLIP: Color.ORANGE,
    EventKind.MOUNT_AFTER_FLIP: Color.GREEN,
    EventKind.FOCUSER_CONNECTED: Color.GREEN,
    EventKind.FOCUSER_DISCONNECTED: Color.RED,
    EventKind.AUTOFOCUS_FINISHED: Color.PURPLE,
    EventKind.ROTATOR_CONNECTED: Color.GREEN,
    EventKind.ROTATOR_DISCONNECTED: Color.RED,
    EventKind.ROTATOR_MOVED: Color.CYAN,
    EventKind.GUIDER_CONNECTED: Color.GREEN,
    EventKind.GUIDER_DISCONNECTED: Color.RED,
    EventKind.GUIDER_START: Color.BLUE,
    EventKind.GUIDER_STOP: Color.ORANGE,
    EventKind.GUIDER_DITHER: Color.CYAN,
    EventKind.FLAT_DISCONNECTED: Color.RED,
    EventKind.WEATHER_DISCONNECTED: Color.RED,
    EventKind.SWITCH_DISCONNECTED: Color.RED,
    EventKind.DOME_DISCONNECTED: Color.RED,
    EventKind.SAFETY_DISCONNECTED: Color.RED,
    EventKind.SEQUENCE_STARTING: Color.CYAN,
    EventKind.SEQUENCE_FINISHED: Color.GREEN,
    EventKind.ADV_SEQ_START: Color.CYAN,
    EventKind.ADV_SEQ_STOP: Color.ORANGE,
    EventKind.TS_TARGETSTART: Color.CYAN,
    EventKind.TS_NEWTARGETSTART: Color.CYAN,
    EventKind.ERROR_AF: Color.RED,
    EventKind.ERROR_PLATESOLVE: Color.RED,
}

_FRAME_COLORS: dict[FrameType, Color] = {
    FrameType.LIGHT: Color.GREEN,
    FrameType.DARK: Color.GRAY,
    FrameType.FLAT: Color.BLUE,
    FrameType.BIAS: Color.PURPLE,
}

_MOUNT_TITLES: dict[EventKind, tuple[str, Color]] = {
    EventKind.MOUNT_BEFORE_FLIP: ("🔄 Mount Preparing for Meridian Flip", Color.ORANGE),
    EventKind.MOUNT_AFTER_FLIP: ("✅ Mount Meridian Flip Completed", Color.GREEN),
    EventKind.MOUNT_PARKED: ("🅿️ Mount Parked", Color.YELLOW),
}

MOUNT_EVENT_KINDS = frozenset(_MOUNT_TITLES)


def event_color(event: Event) -> Color:
    """Pick a severity color for an event, falling back on its raw name."""

    color = _EVENT_COLORS.get(event.kind)
    if color is not None:
        return color
    raw = event.raw_kind.upper()
    if "ERROR" in raw:
        return Color.RED
    if "WARNING" in raw:
        return Color.ORANGE
    return Color.GRAY


def format_measure(value: float, fmt: str, unit: str = "") -> str:
    """Format a measurement, or "n/a" when the API reported none (NaN, inf)."""

    if not math.isfinite(value):
        return "n/a"
    return f"{value:{fmt}}{unit}"


def format_meridian_flip(hours: float, now: Optional[datetime] = None) -> str:
    """Render hours-until-flip as `HH:MM (at HH:MM:SS)` in local time."""

    total_minutes = int(hours * 60)
    duration = f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"
    now = now or datetime.now().astimezone()
    flip_at = now + timedelta(seconds=int(hours * 3600))
    return f"{duration} (at {flip_at.strftime('%H:%M:%S')})"


def _add_target_fields(message: ChatMessage, target: Target) -> None:
    if target.project:
        message.add_field("Project", target.project, inline=True)
    if target.coordinates:
        message.add_field(
            "Coordinates",
            f"RA: {target.coordinates.ra}\nDec: {target.coordinates.dec}",
        )
    if target.rotation is not None:
        message.add_field("Rotation", f"{target.rotation:g}°", inline=True)


def add_meridian_flip(message: ChatMessage, hours: Optional[float]) -> None:
    if hours is not None:
        message.add_field("Meridian Flip In", format_meridian_flip(hours), inline=True)


def add_mount_fields(message: ChatMessage, mount: Optional[MountStatus]) -> None:
    if mount is None or not mount.connected:
        return
    message.add_field("Mount Position", f"RA: {mount.ra}\nDec: {mount.dec}", inline=True)
    message.add_field("Alt/Az", f"Alt: {mount.altitude}\nAz: {mount.azimuth}", inline=True)
    message.add_field("Pier Side", mount.side_of_pier or "unknown", inline=True)
    message.add_field("Tracking", "✅ Enabled" if mount.tracking_enabled else "❌ Disabled", inline=True)


def startup_message(
    target: Optional[Target],
    events_seen: int,
    images_seen: int,
    sink_count: int,
    meridian_flip_hours: Optional[float],
    mount: Optional[MountStatus],
) -> ChatMessage:
    message = ChatMessage(title="🚀 Observatory Monitor Started", color=Color.GREEN)
    if target is None:
        message.add_field("Current Target", "None detected")
    else:
        message.add_field("Current Target", target.name)
        _add_target_fields(message, target)
        source = "Target start event" if target.source is TargetSource.TARGET_START_EVENT else "Sequence"
        message.add_field("Target Source", source, inline=True)

    message.add_field("Events in History", str(events_seen), inline=True)
    message.add_field("Images in History", str(images_seen), inline=True)
    message.add_field("Chat Services", str(sink_count), inline=True)
    add_meridian_flip(message, meridian_flip_hours)
    add_mount_fields(message, mount)
    message.footer = "Ready to monitor telescope events and images"
    return message


def target_message(
    new: Target,
    previous: Optional[Target],
    meridian_flip_hours: Optional[float],
    mount: Optional[MountStatus],
) -> ChatMessage:
    """Target started (no previous target) or target change notification."""

    if previous is None:
        message = ChatMessage(title="🎯 Target Started", color=Color.GREEN)
        message.add_field("Target", new.name)
    else:
        message = ChatMessage(title="🎯 Target Change", color=Color.CYAN)
        message.add_field("Previous Target", previous.name, inline=True)
        message.add_field("New Target", new.name, inline=True)
    _add_target_fields(message, new)
    add_meridian_flip(message, meridian_flip_hours)
    add_mount_fields(message, mount)
    return message


def autofocus_message(result: AutofocusResult) -> ChatMessage:
    successful = result.is_successful
    change = result.position_change
    message = ChatMessage(
        title=f"{'✅' if successful else '⚠️'} Autofocus Completed",
        color=Color.GREEN if successful else Color.ORANGE,
    )
    message.add_field("Filter", result.filter, inline=True)
    message.add_field("Method", result.method, inline=True)
    message.add_field("Duration", result.duration, inline=True)
    message.add_field("Temperature", format_measure(result.temperature, ".1f", "°C"), inline=True)
    message.add_field("Focus Position", str(result.calculated_position), inline=True)
    message.add_field("Position Change", f"+{change}" if change > 0 else str(change), inline=True)
    message.add_field("HFR", format_measure(result.hfr, ".3f"), inline=True)
    message.add_field("R-squared", format_measure(result.best_r_squared, ".4f"), inline=True)
    message.add_field("Measurements", str(result.measurement_count), inline=True)
    message.footer = f"Focuser: {result.focuser_name}"
    return message


def mount_event_message(
    event: Event,
    target: Optional[Target],
    mount: Optional[MountStatus],
) -> ChatMessage:
    title, color = _MOUNT_TITLES.get(event.kind, ("🔭 Mount Event", Color.GRAY))
    message = ChatMessage(title=title, color=color)
    message.add_field("Event", event.raw_kind, inline=True)
    message.add_field("Time", event.timestamp.isoformat(), inline=True)
    if target is not None:
        message.add_field("Current Target", target.name, inline=True)
    add_mount_fields(message, mount)
    return message


def event_message(event: Event) -> ChatMessage:
    """Generic notification for any event without a dedicated builder."""

    if event.kind is EventKind.FILTERWHEEL_CHANGED:
        message = ChatMessage(title="🔄 Filter Changed", color=event_color(event))
        message.add_field("Time", event.timestamp.isoformat())
        new = event.details.get("New") or {}
        previous = event.details.get("Previous") or {}
        if isinstance(new, dict) and isinstance(previous, dict):
            message.add_field("Filter Change", f"{previous.get('Name', '?')} → {new.get('Name', '?')}")
        return message

    message = ChatMessage(title=f"📡 {event.raw_kind}", color=event_color(event))
    message.add_field("Time", event.timestamp.isoformat())
    for key, value in event.details.items():
        if isinstance(value, (str, int, float, bool)):
            message.add_field(str(key), str(value), inline=True)
    return message


def image_message(
    image: Image,
    skipped: int,
    target: Optional[Target],
    meridian_flip_hours: Optional[float],
) -> ChatMessage:
    suffix = f" (+{skipped} skipped)" if skipped > 0 else ""
    message = ChatMessage(
        title=f"📸 New {image.raw_type or image.frame_type.value} Frame Captured{suffix}",
        color=_FRAME_COLORS.get(image.frame_type, Color.CYAN),
    )
    if target is not None:
        message.add_field("Target", target.name, inline=True)
    if skipped > 0:
        message.add_field("Images Since Last Post", f"{skipped + 1} images", inline=True)

    message.add_field("Camera", image.camera, inline=True)
    message.add_field("Tracking RMS", image.rms_text, inline=True)
    message.add_field("Filter", image.filter, inline=True)
    message.add_field("Exposure", f"{image.exposure_time:g}s", inline=True)
    message.add_field("Temperature", format_measure(image.temperature, ".1f", "°C"), inline=True)
    message.add_field("Stars", str(image.stars), inline=True)
    message.add_field("HFR", format_measure(image.hfr, ".2f"), inline=True)
    message.add_field("Mean", format_measure(image.mean, ".1f"), inline=True)
    message.add_field("Median", format_measure(image.median, ".1f"), inline=True)
    message.add_field("StDev", format_measure(image.stdev, ".1f"), inline=True)
    if image.telescope:
        message.footer = f"Telescope: {image.telescope}"

    # The flip only matters when it is about to interrupt imaging.
    if meridian_flip_hours is not None and meridian_flip_hours <= 1.0:
        add_meridian_flip(message, meridian_flip_hours)
    return message
