"""Telegram Bot API notification adapter.

Uses the Bot API for delivery so notifications can be routed via a bot chat.
"""

from __future__ import annotations

from typing import Any

import httpx

from adapters.notification_formatting import format_html
from core.errors import DeliveryError
from core.models import ChatMessage

TELEGRAM_MAX_CAPTION_LEN = 1024


class TelegramBotSink:
    """Sink adapter that sends messages via the Telegram Bot API."""

    name = "telegram"

    def __init__(self, bot_token: str, chat_id: str, client: httpx.AsyncClient) -> None:
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._client = client

    def _endpoint(self, method: str) -> str:
        # The Bot API endpoint is deterministic and derived from the token.
        return f"https://api.telegram.org/bot{self._bot_token}/{method}"

    def _redact(self, text: str) -> str:
        return text.replace(self._bot_token, "<redacted>")

    async def _call(self, method: str, **kwargs: Any) -> None:
        try:
            response = await self._client.post(self._endpoint(method), timeout=15.0, **kwargs)
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise DeliveryError(self.name, self._redact(f"{type(exc).__name__}: {exc}")) from exc
        if not data.get("ok"):
            description = data.get("description") or f"HTTP {response.status_code}"
            raise DeliveryError(self.name, self._redact(f"Bot API error: {description}"))

    async def deliver(self, message: ChatMessage) -> None:
        text = format_html(message, line_break="\n")
        if message.image is None:
            await self._call(
                "sendMessage",
                json={
                    "chat_id": self._chat_id,
                    "text": text,
                    "parse_mode": "HTML",
                    "disable_web_page_preview": True,
                },
            )
            return

        image = message.image
        fits_caption = len(text) <= TELEGRAM_MAX_CAPTION_LEN
        data = {"chat_id": self._chat_id}
        if fits_caption:
            data.update({"caption": text, "parse_mode": "HTML"})
        await self._call(
            "sendPhoto",
            data=data,
            files={"photo": (image.filename, image.data, image.content_type)},
        )
        if not fits_caption:
            await self._call(
                "sendMessage",
                json={"chat_id": self._chat_id, "text": text, "parse_mode": "HTML"},
            )
