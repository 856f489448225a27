"""Matrix notification adapter.

Talks to the client-server API directly: password login (or a pre-issued
access token), HTML room messages, and media uploads for thumbnails.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional
from urllib.parse import quote

import httpx

from adapters.notification_formatting import format_html, format_markdown
from core.errors import DeliveryError
from core.models import ChatMessage, ImageAttachment

LOGGER = logging.getLogger(__name__)


class MatrixSink:
    """Sink adapter that posts messages into one Matrix room."""

    name = "matrix"

    def __init__(
        self,
        homeserver_url: str,
        room_id: str,
        client: httpx.AsyncClient,
        username: Optional[str] = None,
        password: Optional[str] = None,
        access_token: Optional[str] = None,
    ) -> None:
        if not access_token and not (username and password):
            raise ValueError("Matrix needs an access token or a username and password")
        self._homeserver = homeserver_url.rstrip("/")
        self._room_id = room_id
        self._client = client
        self._username = username
        self._password = password
        self._access_token = access_token

    async def _login(self) -> str:
        payload = {
            "type": "m.login.password",
            "identifier": {"type": "m.id.user", "user": self._username},
            "password": self._password,
            "initial_device_display_name": "Starwatch",
        }
        response = await self._client.post(
            f"{self._homeserver}/_matrix/client/v3/login", json=payload, timeout=15.0
        )
        if not response.is_success:
            raise DeliveryError(self.name, f"login failed with HTTP {response.status_code}")
        token = response.json().get("access_token")
        if not token:
            raise DeliveryError(self.name, "login response carried no access token")
        LOGGER.info("Logged into Matrix as %s", self._username)
        return str(token)

    async def _token(self) -> str:
        if not self._access_token:
            self._access_token = await self._login()
        return self._access_token

    def _check(self, response: httpx.Response, action: str) -> None:
        if response.status_code == 401 and self._password:
            # Drop the expired token so the next delivery logs in again.
            self._access_token = None
        if not response.is_success:
            raise DeliveryError(self.name, f"{action} failed with HTTP {response.status_code}: {response.text[:200]}")

    async def _send_event(self, content: dict[str, Any]) -> None:
        token = await self._token()
        url = (
            f"{self._homeserver}/_matrix/client/v3/rooms/{quote(self._room_id, safe='')}"
            f"/send/m.room.message/{uuid.uuid4().hex}"
        )
        response = await self._client.put(
            url,
            json=content,
            headers={"Authorization": f"Bearer {token}"},
            timeout=15.0,
        )
        self._check(response, "send")

    async def _upload(self, image: ImageAttachment) -> str:
        token = await self._token()
        response = await self._client.post(
            f"{self._homeserver}/_matrix/media/v3/upload",
            params={"filename": image.filename},
            content=image.data,
            headers={"Authorization": f"Bearer {token}", "Content-Type": image.content_type},
            timeout=30.0,
        )
        self._check(response, "upload")
        content_uri = response.json().get("content_uri")
        if not content_uri:
            raise DeliveryError(self.name, "upload response carried no content_uri")
        return str(content_uri)

    async def deliver(self, message: ChatMessage) -> None:
        try:
            await self._send_event(
                {
                    "msgtype": "m.text",
                    "body": format_markdown(message),
                    "format": "org.matrix.custom.html",
                    "formatted_body": format_html(message),
                }
            )
            if message.image is not None:
                content_uri = await self._upload(message.image)
                await self._send_event(
                    {
                        "msgtype": "m.image",
                        "body": message.image.filename,
                        "url": content_uri,
                        "info": {
                            "mimetype": message.image.content_type,
                            "size": len(message.image.data),
                        },
                    }
                )
        except httpx.HTTPError as exc:
            raise DeliveryError(self.name, f"{type(exc).__name__}: {exc}") from exc
