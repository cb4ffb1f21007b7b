"""Building gateway messages from Discord events."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from chatbridge.config import EVENT_JOIN_LEAVE, Message

AVATAR_BASE_URL = "https://cdn.discordapp.com/avatars/"
REPLY_SEPARATOR = "|||"
_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class Embed:
    """The parts of a Discord embed that are relayed as text."""

    title: str = ""
    description: str = ""
    url: str = ""


def handle_embed(embed: Embed) -> str:
    """Render an embed as " embed: title - description - url" plus a newline.

    Empty parts are left out; an embed with no parts gives "".
    """
    parts = [part for part in (embed.title, embed.description, embed.url) if part]
    if not parts:
        return ""
    return " embed: " + " - ".join(parts) + "\n"


def avatar_url(user_id: str, avatar: str) -> str:
    """The CDN URL of a user's avatar image."""
    return f"{AVATAR_BASE_URL}{user_id}/{avatar}.jpg"


def content_with_attachments(content: str, urls: Iterable[str]) -> str:
    """Append each attachment URL to content on a line of its own."""
    return content + "".join("\n" + url for url in urls)


def join_leave_message(account: str, username: str, nick: str, joined: bool) -> Message:
    """The system message announcing that a member joined or left the guild."""
    name = nick or username
    return Message(
        account=account,
        event=EVENT_JOIN_LEAVE,
        username="system",
        text=f"{name} {'joins' if joined else 'leaves'}",
    )


def reply_text(
    author_name: str,
    original: str,
    text: str,
    author_icon: str,
    channel_name: str,
    timestamp: datetime,
) -> str:
    """Pack a reply and the message it answers into one separated text.

    author_name is the nick of the original author and is given an "@";
    timestamp is shown in local time when it carries a time zone.
    """
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone()
    return REPLY_SEPARATOR.join(
        (
            "@" + author_name,
            original,
            text,
            author_icon,
            channel_name,
            timestamp.strftime(_TIMESTAMP_FORMAT),
        )
    )


def replace_mention_tokens(content: str, user_id: str, nick: str) -> str:
    """Replace <@id> and <@!id> mentions of user_id with @nick."""
    pattern = re.compile("<@!?" + re.escape(user_id) + ">")
    replacement = "@" + nick
    return pattern.sub(lambda _match: replacement, content)