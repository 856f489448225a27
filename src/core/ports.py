"""Ports (interfaces) used by the core engine.

Ports define the minimal contracts for the data source and notification
sinks so that the core can be reused with different backends.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from core.models import (
    AutofocusResult,
    ChatMessage,
    Event,
    Image,
    ImageAttachment,
    MountStatus,
    SequenceInfo,
)


class DataSourcePort(Protocol):
    """Read-only access to the instrument API. Failures raise FetchError."""

    async def list_events(self, since: Optional[datetime] = None) -> list[Event]:
        ...

    async def list_images(self, include_all: bool = True) -> list[Image]:
        ...

    async def current_sequence(self) -> SequenceInfo:
        ...

    async def mount_status(self) -> MountStatus:
        ...

    async def latest_autofocus(self) -> Optional[AutofocusResult]:
        ...

    async def thumbnail(self, index: int) -> ImageAttachment:
        ...


class SinkPort(Protocol):
    """One chat backend. `deliver` raises DeliveryError on failure."""

    name: str

    async def deliver(self, message: ChatMessage) -> None:
        ...
