"""Mattermost helpers: actions, channel IDs, avatars and webhook payloads."""

from __future__ import annotations

import dataclasses
import logging
from typing import Any

from chatbridge.config import GeneralSettings, Message, get_icon_url
from chatbridge.helper import handle_extra

logger = logging.getLogger("chatbridge.mattermost")

JOIN_LEAVE_TYPES = frozenset(
    {"system_join_leave", "system_join_channel", "system_leave_channel"}
)
PROPS_PREFIX = "matterbridge_"


def replace_action(text: str) -> tuple[str, bool]:
    """Strip the asterisks of a /me action; report whether it was one."""
    if text.startswith("*") and text.endswith("*"):
        return text.replace("*", ""), True
    return text, False


def channel_id_from_name(name: str) -> str | None:
    """The ID given in a channel name of the form "ID:<id>".

    None means the name must be looked up on the server.
    """
    parts = name.split("ID:")
    if len(parts) > 1:
        return parts[1]
    return None


def is_join_leave(message_type: str) -> bool:
    return message_type in JOIN_LEAVE_TYPES


def cache_avatar(avatars: dict[str, str], msg: Message) -> str:
    """Remember the uploaded avatar's SHA for the message's user."""
    files = (msg.extra or {}).get("file") or []
    if not files:
        raise ValueError("avatar message carries no file")
    fi = files[0]
    # A SHA means the file reached the media server.
    if fi.sha:
        logger.debug("Added %s to %s in avatarMap", fi.sha, msg.user_id)
        avatars[msg.user_id] = fi.sha
    return ""


def _payload(icon_url: str, channel: str, username: str, text: str, uuid: str) -> dict[str, Any]:
    return {
        "icon_url": icon_url,
        "channel": channel,
        "username": username,
        "text": text,
        "props": {PROPS_PREFIX + uuid: True},
    }


def webhook_payloads(
    msg: Message,
    icon_url: str,
    uuid: str,
    prefix_nick: bool,
    general: GeneralSettings,
) -> list[dict[str, Any]]:
    """The webhook posts that relay msg, in sending order.

    Events are not relayed. File-size notes come first; file URLs are
    appended to the text because webhooks cannot upload files.
    """
    if msg.event:
        return []
    msg = dataclasses.replace(msg)
    if prefix_nick:
        msg.text = msg.username + msg.text

    payloads = []
    if msg.extra is not None:
        for rmsg in handle_extra(msg, general):
            payloads.append(
                _payload(
                    get_icon_url(rmsg, icon_url), rmsg.channel, rmsg.username, rmsg.text, uuid
                )
            )
        for fi in msg.extra.get("file") or []:
            if fi.url:
                msg.text += " " + fi.url

    payload = _payload(get_icon_url(msg, icon_url), msg.channel, msg.username, msg.text, uuid)
    if msg.avatar:
        payload["icon_url"] = msg.avatar
    payloads.append(payload)
    return payloads