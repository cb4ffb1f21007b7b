"""IRC helpers: flood-control limits, nick handling and message splitting."""

from __future__ import annotations

import zlib
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

from chatbridge.helper import get_sub_lines

DEFAULT_MESSAGE_DELAY = 1300
DEFAULT_MESSAGE_QUEUE = 30
DEFAULT_MESSAGE_LENGTH = 400
DEFAULT_NICKS_PER_ROW = 4
NAMES_PER_POST_BUDGET = 300
FALLBACK_USER = "matterbridge"
RELAYMSG_TAGS = ("draft/relaymsg", "relaymsg")

# Characters with a special meaning on IRC, replaced in RELAYMSG nicks.
_NICK_SPECIALS = frozenset("!+%@&#$:'\"?*,. ")
_RFC1459_FOLD = str.maketrans("[]\\~", "{}|^")


@dataclass(frozen=True)
class IrcLimits:
    """Flood-control settings of an IRC account.

    message_delay is in milliseconds between two sent lines, message_queue
    the number of lines that may wait, and message_length the longest line
    in bytes when long messages are split.
    """

    message_delay: int = DEFAULT_MESSAGE_DELAY
    message_queue: int = DEFAULT_MESSAGE_QUEUE
    message_length: int = DEFAULT_MESSAGE_LENGTH


def resolve_limits(
    message_delay: int = 0, message_queue: int = 0, message_length: int = 0
) -> IrcLimits:
    """Limits from the configured values, where 0 means the default."""
    return IrcLimits(
        message_delay=message_delay or DEFAULT_MESSAGE_DELAY,
        message_queue=message_queue or DEFAULT_MESSAGE_QUEUE,
        message_length=message_length or DEFAULT_MESSAGE_LENGTH,
    )


def sanitize_nick(nick: str) -> str:
    """Replace IRC characters with special meanings in nick with "-"."""
    return "".join("-" if ch in _NICK_SPECIALS else ch for ch in nick)


def colorize_nick(nick: str) -> str:
    """Wrap nick in an mIRC colour code chosen from its checksum.

    Codes 0 and 1 (white and black) are never used.
    """
    code = zlib.crc32(nick.encode("utf-8")) % 14 + 2
    return f"\x03{code:02d}{nick}\x0f"


def format_nicks(nicks: Iterable[str]) -> str:
    return ", ".join(nicks) + " currently on IRC"


def names_messages(
    names: Iterable[str], nicks_per_row: int = DEFAULT_NICKS_PER_ROW
) -> list[str]:
    """The texts that answer a !users request for a channel's names.

    Names are sorted and spread over as many texts as needed; the last
    text is always present, even when no names are left for it.
    """
    if nicks_per_row <= 0:
        raise ValueError(f"nicks_per_row must be positive, got {nicks_per_row}")
    remaining = sorted(names)
    per_post = (NAMES_PER_POST_BUDGET // nicks_per_row) * nicks_per_row
    texts = []
    while len(remaining) > per_post:
        texts.append(format_nicks(remaining[:per_post]))
        remaining = remaining[per_post:]
    texts.append(format_nicks(remaining))
    return texts


def _is_valid_user(name: str) -> bool:
    if not name:
        return False
    name = name.lower().translate(_RFC1459_FOLD)
    # "~" is commonly prepended when there was no ident response.
    if name[0] == "~":
        if len(name) < 2:
            return False
        name = name[1:]

    def alnum(ch: str) -> bool:
        return "a" <= ch <= "z" or "0" <= ch <= "9"

    return alnum(name[0]) and all(alnum(ch) or ch in "-." for ch in name[1:])


def irc_user_name(user: str, nick: str) -> str:
    """The ident to register with: user, or nick when user is empty.

    Leading characters are dropped until the name is acceptable to the
    server; when nothing acceptable is left a fixed name is used.
    """
    user = user or nick
    while not _is_valid_user(user):
        if len(user) <= 1:
            return FALLBACK_USER
        user = user[1:]
    return user


def relay_text(text: str) -> str:
    """Protect a single word starting with ":" from losing its colon on the wire."""
    if text.startswith(":") and " " not in text:
        return ":" + text
    return text


def split_message(
    text: str,
    split: bool = False,
    max_length: int = DEFAULT_MESSAGE_LENGTH,
    clipping_message: str = "",
) -> list[str]:
    """The lines to send for text.

    Lines longer than max_length bytes are split only when split is set.
    """
    return get_sub_lines(text, max_length if split else 0, clipping_message)


def should_skip_privmsg(
    command: str,
    params: Sequence[str],
    source_name: str | None,
    tags: Mapping[str, str] | None,
    nick: str,
) -> bool:
    """Whether an incoming PRIVMSG or NOTICE must not be relayed.

    Skipped are server notices, queries to the bot, the bot's own messages
    and messages the bot relayed itself through RELAYMSG.
    """
    if command == "NOTICE" and len(params) != 2:
        return True
    if not params or params[0] == nick:
        return True
    if source_name is not None and source_name == nick:
        return True
    tags = tags or {}
    return any(tag in tags and tags[tag] == nick for tag in RELAYMSG_TAGS)