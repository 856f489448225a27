"""Shared notification formatting helpers.

Keeping formatting here prevents drift between adapters and keeps messages
consistent regardless of delivery channel.
"""

from __future__ import annotations

import html
from typing import Any

from core.models import ChatMessage

# Discord rejects embeds beyond these sizes.
DISCORD_MAX_FIELDS = 25
DISCORD_MAX_FIELD_VALUE = 1024


def format_discord_embed(message: ChatMessage) -> dict[str, Any]:
    """Create the embed object posted to a Discord webhook."""

    embed: dict[str, Any] = {
        "title": message.title,
        "color": int(message.color),
        "timestamp": message.timestamp.isoformat(),
    }
    if message.body:
        embed["description"] = message.body
    if message.fields:
        embed["fields"] = [
            {
                "name": field.name,
                "value": (field.value or "-")[:DISCORD_MAX_FIELD_VALUE],
                "inline": field.inline,
            }
            for field in message.fields[:DISCORD_MAX_FIELDS]
        ]
    if message.footer:
        embed["footer"] = {"text": message.footer}
    if message.image is not None:
        embed["image"] = {"url": f"attachment://{message.image.filename}"}
    return embed


def format_markdown(message: ChatMessage) -> str:
    """Plain-text fallback body, used where HTML is not rendered."""

    # Centralized formatting keeps notifications consistent and easy to adjust.
    def escape_md(value: str) -> str:
        for ch in r"*[`_":
            value = value.replace(ch, f"\\{ch}")
        return value

    lines = [f"**{escape_md(message.title)}**", ""]
    if message.body:
        lines.extend([escape_md(message.body), ""])
    for field in message.fields:
        value = escape_md(field.value).replace("\n", ", ")
        lines.append(f"**{escape_md(field.name)}**: {value}")
    if message.footer:
        lines.extend(["", f"_{escape_md(message.footer)}_"])
    return "\n".join(lines).strip()


def format_html(message: ChatMessage, line_break: str = "<br>") -> str:
    """Create the HTML body used by the Matrix and Telegram adapters.

    Telegram rejects <br>, so its adapter passes a newline instead.
    """

    parts = [f"<b>{html.escape(message.title)}</b>", ""]
    if message.body:
        parts.extend([html.escape(message.body), ""])
    for field in message.fields:
        value = html.escape(field.value).replace("\n", ", ")
        parts.append(f"<b>{html.escape(field.name)}:</b> {value}")
    if message.footer:
        parts.extend(["", f"<i>{html.escape(message.footer)}</i>"])
    while parts and not parts[-1]:
        parts.pop()
    return line_break.join(parts)
