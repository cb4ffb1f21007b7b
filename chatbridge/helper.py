"""Helpers shared by the protocol bridges: downloads, line splitting, media."""

from __future__ import annotations

import io
import json
import logging
import re
import urllib.error
import urllib.request
from itertools import accumulate

from markdown_it import MarkdownIt
from PIL import Image

from chatbridge.config import (
    EVENT_AVATAR_DOWNLOAD,
    EVENT_FILE_FAILURE_SIZE,
    FileInfo,
    GeneralSettings,
    Message,
)

logger = logging.getLogger("chatbridge.helper")

DEFAULT_CLIPPING_MESSAGE = " <clipped message>"
_DOWNLOAD_TIMEOUT = 5


class DownloadRejected(Exception):
    """A file is not downloaded because of the blacklist or its size."""


def _fetch(url: str, headers: dict[str, str]) -> bytes:
    request = urllib.request.Request(url, headers=headers, method="GET")
    try:
        with urllib.request.urlopen(request, timeout=_DOWNLOAD_TIMEOUT) as response:
            return response.read()
    except urllib.error.HTTPError as exc:
        # The body is returned whatever the status.
        try:
            return exc.read()
        finally:
            exc.close()


def download_file(url: str, auth: str = "") -> bytes:
    """Download url, sending auth as the Authorization header when given."""
    headers = {"Authorization": auth} if auth else {}
    return _fetch(url, headers)


def download_file_auth_rocket(url: str, token: str, user_id: str) -> bytes:
    """Download url with Rocket.Chat user ID and token headers."""
    return _fetch(url, {"X-Auth-Token": token, "X-User-Id": user_id})


def _rune_offsets(line: str) -> list[int]:
    """Byte offsets of the start of every character of line."""
    sizes = [len(ch.encode("utf-8")) for ch in line]
    return list(accumulate(sizes[:-1], initial=0)) if sizes else []


def get_sub_lines(
    message: str, max_line_length: int = 0, clipping_message: str = ""
) -> list[str]:
    """Split message into non-empty lines, clipping lines longer than
    max_line_length bytes into several marked with the clipping message."""
    if not clipping_message:
        clipping_message = DEFAULT_CLIPPING_MESSAGE
    clip_len = len(clipping_message.encode("utf-8"))

    lines: list[str] = []
    for line in message.strip().split("\n"):
        if line == "":
            continue
        encoded = line.encode("utf-8")
        if max_line_length == 0 or len(encoded) <= max_line_length:
            lines.append(line)
            continue

        split_start = 0
        previous = 0
        for offset in _rune_offsets(line):
            if offset - split_start > max_line_length - clip_len:
                lines.append(encoded[split_start:previous].decode("utf-8") + clipping_message)
                split_start = previous
            previous = offset
        lines.append(encoded[split_start:].decode("utf-8"))
    return lines


def handle_extra(msg: Message, general: GeneralSettings) -> list[Message]:
    """Turn file-too-large notes in msg.extra into system messages."""
    result = []
    for fi in (msg.extra or {}).get(EVENT_FILE_FAILURE_SIZE, []):
        text = (
            f"file {fi.name} too big to download "
            f"({fi.size} > allowed size: {general.media_download_size})"
        )
        result.append(
            Message(text=text, username="<system> ", channel=msg.channel, account=msg.account)
        )
    return result


def get_avatar(avatars: dict[str, str], user_id: str, general: GeneralSettings) -> str:
    """Return the media-server URL of a cached avatar, or "" when unknown."""
    sha = avatars.get(user_id)
    if sha is None:
        return ""
    return f"{general.media_server_download}/{sha}/{user_id}.png"


def handle_download_size(msg: Message, name: str, size: int, general: GeneralSettings) -> None:
    """Check name against the download blacklist and size against the limit.

    A file that is too large is recorded in msg.extra and the message event
    set accordingly before the error is raised.
    """
    for entry in general.media_download_blacklist:
        if not entry:
            continue
        try:
            pattern = re.compile(entry)
        except re.error:
            logger.error("incorrect regexp %s for %s", entry, msg.account)
            continue
        if pattern.search(name):
            raise DownloadRejected(f"Matching blacklist {entry}. Not downloading {name}")

    logger.debug("Trying to download %r with size %d", name, size)
    if size > general.media_download_size:
        msg.event = EVENT_FILE_FAILURE_SIZE
        if msg.extra is None:
            msg.extra = {}
        msg.extra.setdefault(msg.event, []).append(
            FileInfo(name=name, comment=msg.text, size=size)
        )
        raise DownloadRejected(
            f"File {json.dumps(name)} to large to download ({size}). "
            f"MediaDownloadSize is {general.media_download_size}"
        )


def handle_download_data(
    msg: Message,
    name: str,
    comment: str,
    url: str,
    data: bytes,
    native_id: str = "",
) -> None:
    """Attach downloaded file data to msg."""
    logger.debug("Download OK %r %d", name, len(data))
    if msg.extra is None:
        msg.extra = {}
    msg.extra.setdefault("file", []).append(
        FileInfo(
            name=name,
            data=data,
            url=url,
            comment=comment,
            avatar=msg.event == EVENT_AVATAR_DOWNLOAD,
            native_id=native_id,
        )
    )


_EMPTY_LINES = re.compile("\n+")


def remove_empty_new_lines(text: str) -> str:
    """Collapse runs of newlines and trim leading and trailing ones."""
    return _EMPTY_LINES.sub("\n", text.strip("\n"))


def clip_message(text: str, length: int, clipping_message: str = "") -> str:
    """Clip text to at most length bytes, ending it with the clipping message."""
    if not clipping_message:
        clipping_message = DEFAULT_CLIPPING_MESSAGE
    encoded = text.encode("utf-8")
    if len(encoded) <= length:
        return text
    keep = length - len(clipping_message.encode("utf-8"))
    if keep < 0:
        raise ValueError(f"length {length} is shorter than the clipping message")
    # A character cut in half is dropped.
    return encoded[:keep].decode("utf-8", "ignore") + clipping_message


_MARKDOWN = MarkdownIt("commonmark", {"breaks": True, "xhtmlOut": False})


def parse_markdown(text: str) -> str:
    """Render markdown as HTML without the surrounding paragraph."""
    result = _MARKDOWN.render(text)
    result = result.removeprefix("<p>")
    return result.removesuffix("</p>\n")


def convert_webp_to_png(data: bytes) -> bytes:
    """Convert WebP image data to PNG."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            if image.format != "WEBP":
                raise ValueError(f"not a WebP image: {image.format}")
            image.load()
            output = io.BytesIO()
            image.save(output, format="PNG")
    except OSError as exc:
        raise ValueError(f"cannot decode WebP image: {exc}") from exc
    return output.getvalue()