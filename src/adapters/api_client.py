"""HTTP data source for the instrument-control Advanced API.

Implements the core DataSourcePort. Every failure surfaces as FetchError so
the orchestrator can skip the affected category for one cycle.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from adapters.api_mapper import (
    map_autofocus,
    map_events,
    map_images,
    map_mount,
    map_sequence,
)
from core.config import ApiConfig
from core.errors import FetchError
from core.models import (
    AutofocusResult,
    Event,
    Image,
    ImageAttachment,
    MountStatus,
    SequenceInfo,
)

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class AdvancedApiClient:
    """Thin async client with retry/backoff around the /v2/api endpoints."""

    def __init__(self, config: ApiConfig, client: Optional[httpx.AsyncClient] = None) -> None:
        self._config = config
        self._base = f"{config.base_url.rstrip('/')}/v2/api"
        self._client = client or httpx.AsyncClient(timeout=config.timeout_seconds)
        # Backoff unit in seconds.
        self.backoff_seconds = 1.0

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, category: str, endpoint: str, params: Optional[dict[str, str]] = None) -> httpx.Response:
        url = f"{self._base}{endpoint}"
        # Attempt n waits n backoff units before the next try.
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._config.retry_attempts + 1),
            wait=wait_incrementing(start=self.backoff_seconds, increment=self.backoff_seconds),
            retry=retry_if_exception_type(httpx.TransportError),
            before_sleep=before_sleep_log(LOGGER, logging.DEBUG),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise FetchError(category, f"{type(exc).__name__}: {exc}") from exc

        # Error statuses are answers, not transient failures.
        if not response.is_success:
            raise FetchError(category, f"HTTP {response.status_code}: {response.text[:200]}")
        return response

    def _map(self, category: str, mapper: Callable[..., T], *args: Any) -> T:
        try:
            return mapper(*args)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise FetchError(category, f"malformed response: {type(exc).__name__}: {exc}") from exc

    async def _envelope(
        self,
        category: str,
        endpoint: str,
        params: Optional[dict[str, str]] = None,
        allow_unsuccessful: bool = False,
    ) -> tuple[bool, Any]:
        """Fetch a JSON envelope and return (Success, Response)."""

        response = await self._get(category, endpoint, params)
        try:
            payload = response.json()
        except ValueError as exc:
            raise FetchError(category, f"invalid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise FetchError(category, "unexpected payload (not a JSON object)")

        success = bool(payload.get("Success"))
        if not success and not allow_unsuccessful:
            raise FetchError(category, str(payload.get("Error") or "request unsuccessful"))
        return success, payload.get("Response")

    async def version(self) -> str:
        _, response = await self._envelope("version", "/version")
        return str(response)

    async def list_events(self, since: Optional[datetime] = None) -> list[Event]:
        _, response = await self._envelope("events", "/event-history")
        if not isinstance(response, list):
            raise FetchError("events", "event history is not a list")
        events = self._map("events", map_events, response)
        if since is not None:
            events = [event for event in events if event.timestamp >= since]
        return sorted(events, key=lambda event: event.timestamp)

    async def list_images(self, include_all: bool = True) -> list[Image]:
        params = {"all": "true"} if include_all else None
        _, response = await self._envelope("images", "/image-history", params)
        if not isinstance(response, list):
            raise FetchError("images", "image history is not a list")
        return self._map("images", map_images, response)

    async def current_sequence(self) -> SequenceInfo:
        _, response = await self._envelope("sequence", "/sequence/json")
        return self._map("sequence", map_sequence, response)

    async def mount_status(self) -> MountStatus:
        _, response = await self._envelope("mount", "/equipment/mount/info")
        if not isinstance(response, dict):
            raise FetchError("mount", "mount info is not an object")
        return self._map("mount", map_mount, response)

    async def latest_autofocus(self) -> Optional[AutofocusResult]:
        # An unsuccessful envelope means no autofocus has run yet.
        success, response = await self._envelope(
            "autofocus", "/equipment/focuser/last-af", allow_unsuccessful=True
        )
        if not success or not isinstance(response, dict):
            return None
        return self._map("autofocus", map_autofocus, response)

    async def thumbnail(self, index: int) -> ImageAttachment:
        response = await self._get("thumbnail", f"/image/thumbnail/{index}")
        content_type = response.headers.get("content-type", "image/jpeg").split(";")[0].strip()
        if not content_type.startswith("image/"):
            raise FetchError("thumbnail", f"unexpected content type {content_type!r}")
        return ImageAttachment(
            data=response.content,
            filename=f"thumbnail_{index}.jpg",
            content_type=content_type,
        )
