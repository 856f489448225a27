from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from adapters.discord_sink import DiscordWebhookSink
from adapters.matrix_sink import MatrixSink
from adapters.telegram_bot_sink import TELEGRAM_MAX_CAPTION_LEN, TelegramBotSink
from core.errors import DeliveryError
from core.models import ChatMessage, Color, ImageAttachment

WEBHOOK = "https://discord.com/api/webhooks/1/secret"


def _message(with_image: bool = False) -> ChatMessage:
    message = ChatMessage(title="📸 New LIGHT Frame Captured", color=Color.GREEN)
    message.add_field("Filter", "Ha", inline=True)
    if with_image:
        message.image = ImageAttachment(data=b"\xff\xd8jpeg", filename="thumbnail_3.jpg")
    return message


def _http(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_discord_posts_embed() -> None:
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(204)

    sink = DiscordWebhookSink(WEBHOOK, _http(handler))
    asyncio.run(sink.deliver(_message()))

    payload = json.loads(requests[0].content)
    assert payload["username"] == "Starwatch"
    assert payload["embeds"][0]["title"] == "📸 New LIGHT Frame Captured"
    assert payload["embeds"][0]["color"] == 0x00FF00


def test_discord_sends_attachment_as_multipart() -> None:
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"id": "1"})

    sink = DiscordWebhookSink(WEBHOOK, _http(handler))
    asyncio.run(sink.deliver(_message(with_image=True)))

    request = requests[0]
    assert request.headers["content-type"].startswith("multipart/form-data")
    body = request.read()
    assert b"payload_json" in body
    assert b"attachment://thumbnail_3.jpg" in body
    assert b'filename="thumbnail_3.jpg"' in body


def test_discord_rate_limit_is_delivery_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, headers={"retry-after": "2"})

    sink = DiscordWebhookSink(WEBHOOK, _http(handler))
    with pytest.raises(DeliveryError) as excinfo:
        asyncio.run(sink.deliver(_message()))
    assert "rate limited" in excinfo.value.reason


def test_matrix_logs_in_then_sends_html() -> None:
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path.endswith("/login"):
            return httpx.Response(200, json={"access_token": "tok"})
        return httpx.Response(200, json={"event_id": "$1"})

    sink = MatrixSink(
        "https://matrix.example.org/",
        "!room:example.org",
        _http(handler),
        username="starwatch",
        password="hunter2",
    )
    asyncio.run(sink.deliver(_message()))

    login, send = requests
    assert json.loads(login.content)["type"] == "m.login.password"
    assert send.method == "PUT"
    assert send.url.path.startswith("/_matrix/client/v3/rooms/!room:example.org/send/m.room.message/")
    assert send.headers["authorization"] == "Bearer tok"
    content = json.loads(send.content)
    assert content["msgtype"] == "m.text"
    assert content["formatted_body"].startswith("<b>📸 New LIGHT Frame Captured</b>")


def test_matrix_uploads_thumbnail() -> None:
    paths = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        if request.url.path.endswith("/upload"):
            return httpx.Response(200, json={"content_uri": "mxc://example.org/abc"})
        return httpx.Response(200, json={"event_id": "$1"})

    sink = MatrixSink("https://matrix.example.org", "!room:example.org", _http(handler), access_token="tok")
    asyncio.run(sink.deliver(_message(with_image=True)))

    assert paths[1] == "/_matrix/media/v3/upload"
    assert len(paths) == 3


def test_matrix_requires_credentials() -> None:
    with pytest.raises(ValueError):
        MatrixSink("https://matrix.example.org", "!room:example.org", _http(lambda r: httpx.Response(200)))


def test_matrix_failure_is_delivery_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"errcode": "M_FORBIDDEN"})

    sink = MatrixSink("https://matrix.example.org", "!room:example.org", _http(handler), access_token="tok")
    with pytest.raises(DeliveryError):
        asyncio.run(sink.deliver(_message()))


def test_telegram_sends_html_message() -> None:
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"ok": True, "result": {}})

    sink = TelegramBotSink("123:ABC", "42", _http(handler))
    asyncio.run(sink.deliver(_message()))

    request = requests[0]
    assert request.url.path == "/bot123:ABC/sendMessage"
    payload = json.loads(request.content)
    assert payload["chat_id"] == "42"
    assert payload["parse_mode"] == "HTML"
    assert "<br>" not in payload["text"]


def test_telegram_long_caption_is_split() -> None:
    methods = []

    def handler(request: httpx.Request) -> httpx.Response:
        methods.append(request.url.path.rsplit("/", 1)[-1])
        return httpx.Response(200, json={"ok": True, "result": {}})

    message = _message(with_image=True)
    message.body = "x" * TELEGRAM_MAX_CAPTION_LEN
    asyncio.run(TelegramBotSink("123:ABC", "42", _http(handler)).deliver(message))

    assert methods == ["sendPhoto", "sendMessage"]


def test_telegram_error_hides_token() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"ok": False, "description": "chat not found"})

    sink = TelegramBotSink("123:ABC", "42", _http(handler))
    with pytest.raises(DeliveryError) as excinfo:
        asyncio.run(sink.deliver(_message()))
    assert "chat not found" in excinfo.value.reason
    assert "123:ABC" not in str(excinfo.value)
