"""Fan-out delivery of one message to every enabled sink."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Optional

from core.models import ChatMessage
from core.ports import SinkPort

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryOutcome:
    sink: str
    ok: bool
    error: Optional[str] = None


class SinkSet:
    """Broadcast messages to independent sinks with per-sink failure isolation.

    A failing sink is logged and counted; it never stops delivery to the
    other sinks and never raises into the caller.
    """

    def __init__(self, sinks: Iterable[SinkPort]) -> None:
        self._sinks = list(sinks)
        self.failures: Counter[str] = Counter()
        self.delivered: Counter[str] = Counter()

    def __len__(self) -> int:
        return len(self._sinks)

    @property
    def names(self) -> list[str]:
        return [sink.name for sink in self._sinks]

    async def broadcast(self, message: ChatMessage) -> list[DeliveryOutcome]:
        """Deliver to all sinks concurrently; outcomes keep sink order."""

        if not self._sinks:
            return []
        return list(await asyncio.gather(*(self._deliver_one(sink, message) for sink in self._sinks)))

    async def _deliver_one(self, sink: SinkPort, message: ChatMessage) -> DeliveryOutcome:
        try:
            await sink.deliver(message)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.failures[sink.name] += 1
            LOGGER.warning(
                "Delivery to %s failed (%s total): %s",
                sink.name,
                self.failures[sink.name],
                exc,
            )
            return DeliveryOutcome(sink=sink.name, ok=False, error=str(exc))
        self.delivered[sink.name] += 1
        return DeliveryOutcome(sink=sink.name, ok=True)
