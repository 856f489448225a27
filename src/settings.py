"""Static configuration for starwatch.

All user-editable settings (API, poll loop, sinks, logging) live in a single
JSON file; secrets (webhook URLs, tokens, passwords) come from the
environment so they stay out of the repo.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, Optional

from dotenv import load_dotenv

from core.config import ApiConfig, MonitorConfig
from core.errors import ConfigError

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# Where config.json is looked up unless STARWATCH_CONFIG points elsewhere.
CONFIG_PATH = os.path.join(PROJECT_ROOT, "config.json")

# Environment variables holding secrets; also the default redaction list.
SECRET_ENV_VARS = (
    "DISCORD_WEBHOOK_URL",
    "MATRIX_PASSWORD",
    "MATRIX_ACCESS_TOKEN",
    "TELEGRAM_BOT_TOKEN",
)


@dataclass(frozen=True)
class DiscordSettings:
    webhook_url: str
    username: str = "Starwatch"


@dataclass(frozen=True)
class MatrixSettings:
    homeserver_url: str
    room_id: str
    username: Optional[str] = None
    password: Optional[str] = None
    access_token: Optional[str] = None


@dataclass(frozen=True)
class TelegramSettings:
    bot_token: str
    chat_id: str


@dataclass(frozen=True)
class Settings:
    api: ApiConfig
    monitor: MonitorConfig
    discord: Optional[DiscordSettings] = None
    matrix: Optional[MatrixSettings] = None
    telegram: Optional[TelegramSettings] = None
    logging: dict[str, Any] = field(default_factory=dict)

    @property
    def enabled_sinks(self) -> list[str]:
        names = []
        if self.discord:
            names.append("discord")
        if self.matrix:
            names.append("matrix")
        if self.telegram:
            names.append("telegram")
        return names


def _load_json_config(path: str) -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(path):
        raise ConfigError(f"Config file not found: {path}")

    with open(path, "r", encoding="utf-8") as handle:
        try:
            data = json.load(handle)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Config file {path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return data


def _section(raw: dict, name: str) -> dict:
    value = raw.get(name, {})
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' must be an object")
    return value


def _enabled(section: dict) -> bool:
    # A sink section only counts when present and not switched off.
    return bool(section) and bool(section.get("enabled", True))


def _require(value: Optional[str], what: str) -> str:
    if not value:
        raise ConfigError(f"{what} is required")
    return value


def _number(section: dict, key: str, default: Any, where: str, nullable: bool = False) -> Any:
    value = section.get(key, default)
    if value is None and nullable:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{where}.{key} must be a number")
    return value


def parse_settings(raw: dict, env: Optional[dict[str, str]] = None) -> Settings:
    """Validate raw config and secrets; raise ConfigError on anything wrong."""

    env = dict(os.environ) if env is None else env

    api_raw = _section(raw, "api")
    api = ApiConfig(
        base_url=_require(api_raw.get("base_url"), "api.base_url"),
        timeout_seconds=_number(api_raw, "timeout_seconds", 30, "api"),
        retry_attempts=int(_number(api_raw, "retry_attempts", 3, "api")),
    )

    monitor_raw = _section(raw, "monitor")
    monitor = MonitorConfig(
        poll_interval_seconds=_number(monitor_raw, "poll_interval_seconds", 5, "monitor"),
        image_cooldown_seconds=_number(monitor_raw, "image_cooldown_seconds", 60, "monitor"),
        dedup_window_hours=_number(monitor_raw, "dedup_window_hours", 24, "monitor", nullable=True),
        attach_thumbnails=bool(monitor_raw.get("attach_thumbnails", True)),
        startup_message=bool(monitor_raw.get("startup_message", True)),
    )

    sinks = _section(raw, "sinks")

    discord = None
    discord_raw = _section(sinks, "discord")
    if _enabled(discord_raw):
        discord = DiscordSettings(
            webhook_url=_require(
                env.get("DISCORD_WEBHOOK_URL") or discord_raw.get("webhook_url"),
                "DISCORD_WEBHOOK_URL (discord sink enabled)",
            ),
            username=str(discord_raw.get("username", "Starwatch")),
        )

    matrix = None
    matrix_raw = _section(sinks, "matrix")
    if _enabled(matrix_raw):
        access_token = env.get("MATRIX_ACCESS_TOKEN")
        username = matrix_raw.get("username")
        password = env.get("MATRIX_PASSWORD")
        if not access_token and not (username and password):
            raise ConfigError(
                "Matrix sink needs MATRIX_ACCESS_TOKEN or sinks.matrix.username plus MATRIX_PASSWORD"
            )
        matrix = MatrixSettings(
            homeserver_url=_require(matrix_raw.get("homeserver_url"), "sinks.matrix.homeserver_url"),
            room_id=_require(matrix_raw.get("room_id"), "sinks.matrix.room_id"),
            username=username,
            password=password,
            access_token=access_token,
        )

    telegram = None
    telegram_raw = _section(sinks, "telegram")
    if _enabled(telegram_raw):
        chat_id = telegram_raw.get("chat_id")
        telegram = TelegramSettings(
            bot_token=_require(env.get("TELEGRAM_BOT_TOKEN"), "TELEGRAM_BOT_TOKEN (telegram sink enabled)"),
            chat_id=_require(str(chat_id) if chat_id is not None else None, "sinks.telegram.chat_id"),
        )

    return Settings(
        api=api,
        monitor=monitor,
        discord=discord,
        matrix=matrix,
        telegram=telegram,
        logging=_section(raw, "logging"),
    )


def load_settings(path: Optional[str] = None) -> Settings:
    """Load .env secrets and config.json, failing fast on invalid settings."""

    load_dotenv()
    path = path or os.getenv("STARWATCH_CONFIG") or CONFIG_PATH
    return parse_settings(_load_json_config(path))
