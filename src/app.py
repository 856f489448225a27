"""Application entry point for the observatory monitor."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

import httpx
from art import tprint

import settings
from adapters.api_client import AdvancedApiClient
from adapters.discord_sink import DiscordWebhookSink
from adapters.matrix_sink import MatrixSink
from adapters.telegram_bot_sink import TelegramBotSink
from core.broadcast import SinkSet
from core.errors import ConfigError, FetchError
from core.messages import format_measure, format_meridian_flip
from core.ports import SinkPort
from core.processor import ObservatoryMonitor

NAME = "STARWATCH"
FONT = "tarty-1"

LOGGER = logging.getLogger(__name__)


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", True):
        return []
    values = []
    for name in redact_cfg.get("patterns", settings.SECRET_ENV_VARS):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging(config: dict) -> None:
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = _RedactingFormatter(_collect_redaction_values(config), fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/starwatch.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        file_handler = RotatingFileHandler(
            path,
            maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
            backupCount=int(file_cfg.get("backup_count", 5)),
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers, force=True)
    # httpx logs every request at INFO, which drowns the poll loop.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_sinks(config: settings.Settings, client: httpx.AsyncClient) -> list[SinkPort]:
    """Instantiate one adapter per enabled sink, sharing one HTTP client."""

    sinks: list[SinkPort] = []
    if config.discord:
        sinks.append(
            DiscordWebhookSink(config.discord.webhook_url, client, username=config.discord.username)
        )
    if config.matrix:
        sinks.append(
            MatrixSink(
                config.matrix.homeserver_url,
                config.matrix.room_id,
                client,
                username=config.matrix.username,
                password=config.matrix.password,
                access_token=config.matrix.access_token,
            )
        )
    if config.telegram:
        sinks.append(TelegramBotSink(config.telegram.bot_token, config.telegram.chat_id, client))
    return sinks


def _install_stop_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C still raises.
            pass


async def _run_monitor(config: settings.Settings) -> None:
    source = AdvancedApiClient(config.api)
    async with httpx.AsyncClient() as client:
        sinks = SinkSet(build_sinks(config, client))
        if not len(sinks):
            LOGGER.warning("No notification sinks enabled; changes will only be logged")
        else:
            LOGGER.info("Enabled sinks - %s", ", ".join(sinks.names))

        monitor = ObservatoryMonitor(source, sinks, config.monitor)
        stop = asyncio.Event()
        _install_stop_handlers(stop)
        try:
            await monitor.run(stop)
        finally:
            await source.aclose()
            if sinks.failures:
                LOGGER.info("Delivery failures this run: %s", dict(sinks.failures))


def _run(config: settings.Settings) -> None:
    _print_banner()
    LOGGER.info("Starting starwatch, polling %s", config.api.base_url)
    try:
        asyncio.run(_run_monitor(config))
    except KeyboardInterrupt:
        LOGGER.info("Interrupted")


async def _status(config: settings.Settings) -> None:
    source = AdvancedApiClient(config.api)
    try:
        print(f"API version: {await source.version()}")

        try:
            sequence = await source.current_sequence()
        except FetchError as exc:
            print(f"Sequence: unavailable ({exc.reason})")
        else:
            print(f"Target: {sequence.target_name or '-'}")
            if sequence.meridian_flip_hours is not None:
                print(f"Meridian flip: {format_meridian_flip(sequence.meridian_flip_hours)}")

        try:
            mount = await source.mount_status()
        except FetchError as exc:
            print(f"Mount: unavailable ({exc.reason})")
        else:
            if mount.connected:
                print(f"Mount: RA {mount.ra} / Dec {mount.dec}, pier {mount.side_of_pier}")
            else:
                print("Mount: disconnected")

        try:
            autofocus = await source.latest_autofocus()
        except FetchError as exc:
            print(f"Autofocus: unavailable ({exc.reason})")
        else:
            if autofocus is None:
                print("Autofocus: none yet")
            else:
                outcome = "ok" if autofocus.is_successful else "check"
                hfr = format_measure(autofocus.hfr, ".2f")
                r_squared = format_measure(autofocus.best_r_squared, ".3f")
                print(
                    f"Autofocus: {autofocus.filter} at {autofocus.calculated_position} "
                    f"(HFR {hfr}, R² {r_squared}, {outcome})"
                )
    finally:
        await source.aclose()


async def _events(config: settings.Settings, count: int) -> None:
    source = AdvancedApiClient(config.api)
    try:
        events = await source.list_events()
    finally:
        await source.aclose()
    for event in events[-count:]:
        print(f"{event.timestamp.isoformat()} | {event.raw_kind}")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="starwatch")
    parser.add_argument("--config", help="Path to config.json (default: $STARWATCH_CONFIG or ./config.json)")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the monitor")
    subparsers.add_parser("status", help="Show target, mount and last autofocus")
    events_parser = subparsers.add_parser("events", help="Print the most recent events")
    events_parser.add_argument("--count", type=int, default=20)

    args = parser.parse_args(argv)

    try:
        config = settings.load_settings(args.config)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc
    _configure_logging(config.logging)

    try:
        if args.command == "status":
            asyncio.run(_status(config))
            return
        if args.command == "events":
            asyncio.run(_events(config, max(args.count, 1)))
            return
    except FetchError as exc:
        print(f"Could not reach the API: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc
    _run(config)


if __name__ == "__main__":
    main()
