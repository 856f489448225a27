"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to the instrument API payloads or any chat backend types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Mapping, Optional


class EventKind(Enum):
    """Known event kinds reported by the instrument API.

    Anything not listed maps to OTHER so new kinds still produce a generic
    notification instead of being dropped.
    """

    CAMERA_CONNECTED = "CAMERA-CONNECTED"
    CAMERA_DISCONNECTED = "CAMERA-DISCONNECTED"
    FILTERWHEEL_CONNECTED = "FILTERWHEEL-CONNECTED"
    FILTERWHEEL_DISCONNECTED = "FILTERWHEEL-DISCONNECTED"
    FILTERWHEEL_CHANGED = "FILTERWHEEL-CHANGED"
    MOUNT_CONNECTED = "MOUNT-CONNECTED"
    MOUNT_DISCONNECTED = "MOUNT-DISCONNECTED"
    MOUNT_PARKED = "MOUNT-PARKED"
    MOUNT_UNPARKED = "MOUNT-UNPARKED"
    MOUNT_BEFORE_FLIP = "MOUNT-BEFORE-FLIP"
    MOUNT_AFTER_FLIP = "MOUNT-AFTER-FLIP"
    FOCUSER_CONNECTED = "FOCUSER-CONNECTED"
    FOCUSER_DISCONNECTED = "FOCUSER-DISCONNECTED"
    AUTOFOCUS_FINISHED = "AUTOFOCUS-FINISHED"
    ROTATOR_CONNECTED = "ROTATOR-CONNECTED"
    ROTATOR_DISCONNECTED = "ROTATOR-DISCONNECTED"
    ROTATOR_MOVED = "ROTATOR-MOVED"
    GUIDER_CONNECTED = "GUIDER-CONNECTED"
    GUIDER_DISCONNECTED = "GUIDER-DISCONNECTED"
    GUIDER_START = "GUIDER-START"
    GUIDER_STOP = "GUIDER-STOP"
    GUIDER_DITHER = "GUIDER-DITHER"
    FLAT_CONNECTED = "FLAT-CONNECTED"
    FLAT_DISCONNECTED = "FLAT-DISCONNECTED"
    WEATHER_CONNECTED = "WEATHER-CONNECTED"
    WEATHER_DISCONNECTED = "WEATHER-DISCONNECTED"
    SWITCH_CONNECTED = "SWITCH-CONNECTED"
    SWITCH_DISCONNECTED = "SWITCH-DISCONNECTED"
    DOME_CONNECTED = "DOME-CONNECTED"
    DOME_DISCONNECTED = "DOME-DISCONNECTED"
    SAFETY_CONNECTED = "SAFETY-CONNECTED"
    SAFETY_DISCONNECTED = "SAFETY-DISCONNECTED"
    SEQUENCE_STARTING = "SEQUENCE-STARTING"
    SEQUENCE_FINISHED = "SEQUENCE-FINISHED"
    ADV_SEQ_START = "ADV-SEQ-START"
    ADV_SEQ_STOP = "ADV-SEQ-STOP"
    TS_TARGETSTART = "TS-TARGETSTART"
    TS_NEWTARGETSTART = "TS-NEWTARGETSTART"
    IMAGE_SAVE = "IMAGE-SAVE"
    ERROR_AF = "ERROR-AF"
    ERROR_PLATESOLVE = "ERROR-PLATESOLVE"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, raw: str) -> "EventKind":
        try:
            return cls(raw.strip().upper())
        except ValueError:
            return cls.OTHER

    @property
    def is_target_start(self) -> bool:
        return self in (EventKind.TS_TARGETSTART, EventKind.TS_NEWTARGETSTART)


class FrameType(Enum):
    LIGHT = "LIGHT"
    DARK = "DARK"
    FLAT = "FLAT"
    BIAS = "BIAS"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, raw: str) -> "FrameType":
        try:
            return cls(raw.strip().upper())
        except ValueError:
            return cls.OTHER


class TargetSource(Enum):
    """Where the current target was resolved from."""

    SEQUENCE = "sequence"
    TARGET_START_EVENT = "target-start-event"


class Color(IntEnum):
    """Severity tag carried by chat messages (RGB value)."""

    RED = 0xFF0000
    GREEN = 0x00FF00
    BLUE = 0x0000FF
    YELLOW = 0xFFFF00
    PURPLE = 0x800080
    ORANGE = 0xFFA500
    CYAN = 0x00FFFF
    GRAY = 0x808080


@dataclass(frozen=True)
class Event:
    """One entry of the instrument's event history."""

    timestamp: datetime
    kind: EventKind
    raw_kind: str
    details: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Image:
    """Metadata of one captured frame."""

    index: int
    timestamp: datetime
    filter: str
    exposure_time: float
    frame_type: FrameType
    raw_type: str
    mean: float
    median: float
    stdev: float
    stars: int
    hfr: float
    temperature: float
    camera: str = ""
    telescope: str = ""
    rms_text: str = ""


@dataclass(frozen=True)
class TargetCoordinates:
    ra: str
    dec: str


@dataclass(frozen=True)
class Target:
    """The observation target as currently resolved."""

    name: str
    source: TargetSource
    coordinates: Optional[TargetCoordinates] = None
    rotation: Optional[float] = None
    project: Optional[str] = None

    def same_as(self, other: "Target") -> bool:
        """Same name, and coordinates agree wherever both sides know them."""

        if self.name != other.name:
            return False
        if self.coordinates is None or other.coordinates is None:
            return True
        return self.coordinates == other.coordinates


@dataclass(frozen=True)
class SequenceInfo:
    """What the running sequence reports about itself."""

    target_name: Optional[str]
    meridian_flip_hours: Optional[float] = None


@dataclass(frozen=True)
class MountStatus:
    connected: bool
    ra: str = ""
    dec: str = ""
    altitude: str = ""
    azimuth: str = ""
    side_of_pier: str = ""
    tracking_enabled: bool = False
    parked: bool = False


@dataclass(frozen=True)
class AutofocusResult:
    """Summary of the latest autofocus run."""

    success: bool
    filter: str
    method: str
    duration: str
    temperature: float
    focuser_name: str
    initial_position: int
    calculated_position: int
    hfr: float
    calculated_error: float
    measurement_count: int
    best_r_squared: float

    @property
    def position_change(self) -> int:
        return self.calculated_position - self.initial_position

    @property
    def is_successful(self) -> bool:
        return self.success and self.calculated_error == 0.0 and self.best_r_squared > 0.8


@dataclass(frozen=True)
class ImageAttachment:
    data: bytes
    filename: str
    content_type: str = "image/jpeg"


@dataclass(frozen=True)
class ChatField:
    name: str
    value: str
    inline: bool = False


@dataclass
class ChatMessage:
    """Backend-neutral notification payload handed to every sink."""

    title: str
    color: Color = Color.GRAY
    body: str = ""
    fields: list[ChatField] = field(default_factory=list)
    footer: Optional[str] = None
    image: Optional[ImageAttachment] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def add_field(self, name: str, value: str, inline: bool = False) -> "ChatMessage":
        self.fields.append(ChatField(name=name, value=value, inline=inline))
        return self
