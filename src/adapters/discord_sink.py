"""Discord webhook notification adapter."""

from __future__ import annotations

import json

import httpx

from adapters.notification_formatting import format_discord_embed
from core.errors import DeliveryError
from core.models import ChatMessage


class DiscordWebhookSink:
    """Sink adapter that posts one embed per message to a Discord webhook."""

    name = "discord"

    def __init__(self, webhook_url: str, client: httpx.AsyncClient, username: str = "Starwatch") -> None:
        self._webhook_url = webhook_url
        self._client = client
        self._username = username

    async def deliver(self, message: ChatMessage) -> None:
        payload = {"username": self._username, "embeds": [format_discord_embed(message)]}
        try:
            if message.image is None:
                response = await self._client.post(self._webhook_url, json=payload, timeout=15.0)
            else:
                # Attachments require multipart; the embed references the file by name.
                image = message.image
                response = await self._client.post(
                    self._webhook_url,
                    data={"payload_json": json.dumps(payload)},
                    files={"files[0]": (image.filename, image.data, image.content_type)},
                    timeout=30.0,
                )
        except httpx.HTTPError as exc:
            raise DeliveryError(self.name, f"{type(exc).__name__}: {exc}") from exc

        if response.status_code == 429:
            retry_after = response.headers.get("retry-after", "?")
            raise DeliveryError(self.name, f"rate limited (retry after {retry_after}s)")
        if not response.is_success:
            raise DeliveryError(self.name, f"HTTP {response.status_code}: {response.text[:200]}")
