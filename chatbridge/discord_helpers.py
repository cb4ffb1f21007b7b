"""Discord channel and member lookups and message text rewriting."""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable

from chatbridge.config import ChannelInfo

logger = logging.getLogger("chatbridge.discord")


class ChannelType(IntEnum):
    GUILD_TEXT = 0
    DM = 1
    GUILD_VOICE = 2
    GROUP_DM = 3
    GUILD_CATEGORY = 4
    GUILD_NEWS = 5
    GUILD_STORE = 6
    GUILD_NEWS_THREAD = 10
    GUILD_PUBLIC_THREAD = 11
    GUILD_PRIVATE_THREAD = 12
    GUILD_STAGE_VOICE = 13
    GUILD_FORUM = 15


THREAD_TYPES = frozenset(
    {
        ChannelType.GUILD_NEWS_THREAD,
        ChannelType.GUILD_PUBLIC_THREAD,
        ChannelType.GUILD_PRIVATE_THREAD,
    }
)


@dataclass
class Channel:
    """A guild channel as reported by Discord."""

    id: str
    name: str
    type: int = ChannelType.GUILD_TEXT
    parent_id: str = ""


@dataclass
class Member:
    """A guild member."""

    user_id: str
    username: str
    nick: str = ""
    avatar: str = ""

    @property
    def mention(self) -> str:
        return f"<@{self.user_id}>"


class MemberNotFound(LookupError):
    """No guild member has the given nick or username."""


_USER_MENTION = re.compile("@[^@\n]{1,32}")
_EMOTE = re.compile(r"<a?(:\w+:)\d+>", re.ASCII)

_ALLOWED_MENTION_TYPES = {"everyone": "everyone", "roles": "roles", "users": "users"}

_WEBHOOK_SPLIT_COUNT = 7
_WEBHOOK_ID_INDEX = 5
_WEBHOOK_TOKEN_INDEX = 6


def enumerate_usernames(text: str) -> list[str]:
    """Every prefix of text that ends just before a run of whitespace,
    plus text itself when it does not end in whitespace."""
    if all(ch.isspace() for ch in text):
        return []
    usernames: list[str] = []
    username = ""
    end_space = ""
    skipping_space = True
    for ch in text:
        if ch.isspace():
            if not skipping_space:
                usernames.append(username)
                skipping_space = True
            end_space += ch
        else:
            end_space = ""
            skipping_space = False
        username += ch
    if not end_space:
        usernames.append(username)
    return usernames


def replace_emotes(text: str) -> str:
    """Turn custom emote markup such as <:name:123> into :name:."""
    return _EMOTE.sub(r"\1", text)


def replace_action(text: str) -> tuple[str, bool]:
    """Strip the underscores around a /me action; report whether it was one."""
    if len(text) > 1 and text.startswith("_") and text.endswith("_"):
        return text[1:-1], True
    return text, False


def split_url(url: str) -> tuple[str, str]:
    """Return the ID and token of a webhook URL."""
    parts = url.split("/")
    if len(parts) != _WEBHOOK_SPLIT_COUNT:
        raise ValueError(f"not a webhook URL: {url!r}")
    return parts[_WEBHOOK_ID_INDEX], parts[_WEBHOOK_TOKEN_INDEX]


def sanitize_username(username: str) -> str:
    return username.replace(" ", "")


def allowed_mentions(values: list[str] | None) -> dict[str, list[str]] | None:
    """The allowed_mentions object for the configured AllowMention values.

    None means AllowMention is unset and every mention is allowed.
    """
    if values is None:
        return None
    return {"parse": [_ALLOWED_MENTION_TYPES[v] for v in values if v in _ALLOWED_MENTION_TYPES]}


class GuildDirectory:
    """The channels and members of one guild, with name and ID lookups."""

    def __init__(
        self,
        channels: list[Channel] | None = None,
        fetch_member: Callable[[str], Member | None] | None = None,
    ):
        self.channels: list[Channel] = list(channels or [])
        self.channel_info: dict[str, ChannelInfo] = {}
        self.members_by_user: dict[str, Member] = {}
        self.members_by_nick: dict[str, Member] = {}
        self._fetch_member = fetch_member
        self._channels_lock = threading.RLock()
        self._members_lock = threading.RLock()

    def join_channel(self, channel: ChannelInfo) -> None:
        with self._channels_lock:
            self.channel_info[channel.id] = channel

    def channel_id(self, name: str) -> str:
        """The ID of a channel named in the configuration, or ""."""
        if "/" in name:
            return self.category_channel_id(name)
        with self._channels_lock:
            parts = name.split("ID:")
            if len(parts) > 1:
                return parts[1]
            for channel in self.channels:
                if channel.name == name and channel.type == ChannelType.GUILD_TEXT:
                    return channel.id
        return ""

    def category_channel_id(self, name: str) -> str:
        """The ID of a channel given as category/channel, or ""."""
        with self._channels_lock:
            parts = name.split("/")
            if len(parts) != 2:
                return ""
            category, channel_name = parts
            for channel in self.channels:
                if channel.name != channel_name or not channel.parent_id:
                    continue
                if any(
                    cat.id == channel.parent_id and cat.name == category
                    for cat in self.channels
                ):
                    return channel.id
        return ""

    def channel_name(self, channel_id: str) -> str:
        """The configured name of the channel with channel_id, or ""."""
        with self._channels_lock:
            for info in self.channel_info.values():
                if info.name == "ID:" + channel_id:
                    return info.name
            for channel in self.channels:
                if channel.id == channel_id:
                    return self.category_channel_name(channel.name, channel.parent_id)
        return ""

    def category_channel_name(self, name: str, parent_id: str) -> str:
        """name prefixed with its category when the configuration uses categories."""
        with self._channels_lock:
            if not any("/" in info.name for info in self.channel_info.values()):
                return name
            for channel in self.channels:
                if channel.id == parent_id:
                    name = channel.name + "/" + name
        return name

    def add_member(self, member: Member) -> None:
        """Record member, replacing what was known about the same user."""
        with self._members_lock:
            current = self.members_by_user.pop(member.user_id, None)
            if current is not None:
                logger.debug(
                    "memberupdate: user %s (nick %s) changes nick to %s",
                    member.username,
                    current.nick,
                    member.nick,
                )
                self.members_by_nick.pop(current.username, None)
                self.members_by_nick.pop(current.nick, None)
            self.members_by_user[member.user_id] = member
            self.members_by_nick[member.username] = member
            if member.nick:
                self.members_by_nick[member.nick] = member

    def remove_member(self, user_id: str) -> None:
        with self._members_lock:
            current = self.members_by_user.pop(user_id, None)
            if current is None:
                return
            for key in (current.username, current.nick):
                if self.members_by_nick.get(key) is current:
                    del self.members_by_nick[key]

    def member_by_nick(self, nick: str) -> Member:
        with self._members_lock:
            try:
                return self.members_by_nick[nick]
            except KeyError:
                raise MemberNotFound(f"Couldn't find guild member with nick {nick}") from None

    def nick(self, user_id: str, username: str) -> str:
        """The member's nick when set, otherwise username."""
        with self._members_lock:
            member = self.members_by_user.get(user_id)
        if member is not None:
            return member.nick or username
        if self._fetch_member is None:
            return username
        try:
            member = self._fetch_member(user_id)
        except Exception as exc:  # a failed lookup falls back to the username
            logger.warning("Failed to fetch information for member %s: %s", user_id, exc)
            return username
        if member is None:
            logger.warning("Got no information for member %s", user_id)
            return username
        self.add_member(member)
        return member.nick or username

    def replace_user_mentions(self, text: str) -> str:
        """Turn @nick mentions of known members into Discord mentions."""

        def replace(match: re.Match[str]) -> str:
            found = match.group(0)
            for username in enumerate_usernames(found[1:]):
                logger.debug("Testing mention: '%s'", username)
                try:
                    member = self.member_by_nick(username)
                except MemberNotFound:
                    continue
                return found.replace("@" + username, member.mention, 1)
            return found

        return _USER_MENTION.sub(replace, text)