from __future__ import annotations

import asyncio
import logging

import httpx

import app
from adapters.discord_sink import DiscordWebhookSink
from adapters.telegram_bot_sink import TelegramBotSink
from settings import parse_settings


def test_redacting_formatter_masks_secrets() -> None:
    formatter = app._RedactingFormatter(["123:ABC"], fmt="%(message)s")
    record = logging.LogRecord("x", logging.WARNING, __file__, 1, "POST /bot123:ABC/sendMessage", None, None)
    assert formatter.format(record) == "POST /bot***/sendMessage"


def test_redaction_values_come_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:ABC")
    monkeypatch.delenv("DISCORD_WEBHOOK_URL", raising=False)
    assert "123:ABC" in app._collect_redaction_values({})
    assert app._collect_redaction_values({"redact": {"enabled": False}}) == []


def test_build_sinks_follows_enabled_settings() -> None:
    config = parse_settings(
        {
            "api": {"base_url": "http://localhost:1888"},
            "sinks": {"discord": {}, "telegram": {"chat_id": "42"}},
        },
        env={"TELEGRAM_BOT_TOKEN": "123:ABC"},
    )
    # An empty section means "not configured".
    assert config.enabled_sinks == ["telegram"]

    async def scenario():
        async with httpx.AsyncClient() as client:
            return app.build_sinks(config, client)

    sinks = asyncio.run(scenario())

    assert [type(sink) for sink in sinks] == [TelegramBotSink]
    assert not any(isinstance(sink, DiscordWebhookSink) for sink in sinks)
