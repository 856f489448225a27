from __future__ import annotations

import asyncio

from core.broadcast import SinkSet
from core.errors import DeliveryError
from core.models import ChatMessage


class FakeSink:
    def __init__(self, name: str, fail: bool = False) -> None:
        self.name = name
        self._fail = fail
        self.received: list[ChatMessage] = []

    async def deliver(self, message: ChatMessage) -> None:
        if self._fail:
            raise DeliveryError(self.name, "HTTP 500")
        self.received.append(message)


class CrashingSink:
    name = "crashing"

    async def deliver(self, message: ChatMessage) -> None:
        raise RuntimeError("unexpected")


def test_failing_sink_does_not_block_others() -> None:
    first, second, third = FakeSink("discord"), FakeSink("matrix", fail=True), FakeSink("telegram")
    sinks = SinkSet([first, second, third])
    message = ChatMessage(title="Frame")

    outcomes = asyncio.run(sinks.broadcast(message))

    assert [(outcome.sink, outcome.ok) for outcome in outcomes] == [
        ("discord", True),
        ("matrix", False),
        ("telegram", True),
    ]
    assert first.received == [message]
    assert third.received == [message]
    assert sinks.failures["matrix"] == 1
    assert sinks.delivered["discord"] == 1
    assert "HTTP 500" in outcomes[1].error


def test_unexpected_sink_exception_is_isolated() -> None:
    sinks = SinkSet([CrashingSink(), FakeSink("discord")])

    outcomes = asyncio.run(sinks.broadcast(ChatMessage(title="Frame")))

    assert [outcome.ok for outcome in outcomes] == [False, True]


def test_empty_sink_set_broadcasts_nothing() -> None:
    sinks = SinkSet([])
    assert len(sinks) == 0
    assert asyncio.run(sinks.broadcast(ChatMessage(title="Frame"))) == []
