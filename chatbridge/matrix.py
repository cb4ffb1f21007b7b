"""Matrix helpers: display names, rate-limit handling and attachment checks."""

from __future__ import annotations

import json
import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, TypeVar

T = TypeVar("T")

RATELIMIT_ERRCODE = "M_LIMIT_EXCEEDED"
NICKNAME_TTL = 10 * 60
_ATTACHMENT_TYPES = frozenset({"m.image", "m.video", "m.file"})

_HTML_TAG = re.compile("</.*?>")
_HTML_REPLACEMENT_TAG = re.compile("<[^>]*>")
_HTML_ESCAPES = str.maketrans(
    {"&": "&amp;", "'": "&#39;", "<": "&lt;", ">": "&gt;", '"': "&#34;"}
)

# Serialises retried requests so that a rate limit is respected by all of them.
_RATE_LOCK = threading.RLock()


@dataclass(frozen=True)
class MatrixUsername:
    """A username as plain text and as HTML."""

    plain: str
    formatted: str


def new_matrix_username(username: str) -> MatrixUsername:
    """Build both forms of a username.

    A username holding a closing HTML tag is taken as HTML; its tags are
    stripped for the plain form. Any other username is HTML-escaped.
    """
    if _HTML_TAG.search(username):
        return MatrixUsername(
            plain=_HTML_REPLACEMENT_TAG.sub("", username), formatted=username
        )
    return MatrixUsername(plain=username, formatted=username.translate(_HTML_ESCAPES))


class MatrixHTTPError(Exception):
    """An error response from a Matrix homeserver."""

    def __init__(self, errcode: str = "", error: str = "", retry_after_ms: int = 0):
        super().__init__(error or errcode)
        self.errcode = errcode
        self.error = error
        self.retry_after_ms = retry_after_ms


def parse_http_error(content: bytes | str) -> MatrixHTTPError:
    """Parse the JSON body of an error response.

    A body that cannot be read gives an error whose message is "unmarshal failed".
    """
    failed = MatrixHTTPError(error="unmarshal failed")
    try:
        data = json.loads(content)
    except (ValueError, TypeError):
        return failed
    if not isinstance(data, dict):
        return failed
    errcode = data.get("errcode") or ""
    error = data.get("error") or ""
    retry_after = data.get("retry_after_ms") or 0
    if not isinstance(errcode, str) or not isinstance(error, str):
        return failed
    if isinstance(retry_after, bool):
        return failed
    if isinstance(retry_after, float):
        if not retry_after.is_integer():
            return failed
        retry_after = int(retry_after)
    if not isinstance(retry_after, int):
        return failed
    return MatrixHTTPError(errcode=errcode, error=error, retry_after_ms=retry_after)


def ratelimit_delay(error: BaseException) -> float | None:
    """Seconds to wait when error is a rate limit, otherwise None."""
    if not isinstance(error, MatrixHTTPError) or error.errcode != RATELIMIT_ERRCODE:
        return None
    return error.retry_after_ms / 1000


def retry(func: Callable[[], T], sleep: Callable[[float], Any] = time.sleep) -> T:
    """Call func until it is no longer rate limited and return its result.

    Errors other than rate limits are raised at once.
    """
    with _RATE_LOCK:
        while True:
            try:
                return func()
            except Exception as exc:
                delay = ratelimit_delay(exc)
                if delay is None:
                    raise
                sleep(delay)


def contains_attachment(content: Mapping[str, Any]) -> bool:
    """Whether an event's content is an image, video or file."""
    return content.get("msgtype") in _ATTACHMENT_TYPES


def avatar_thumbnail_url(server: str, avatar_url: str) -> str:
    """The thumbnail URL of an mxc:// avatar on server, or "" for no avatar."""
    url = avatar_url.replace("mxc://", server + "/_matrix/media/r0/thumbnail/")
    if url:
        url += "?width=37&height=37&method=crop"
    return url


@dataclass
class _Entry:
    display_name: str
    last_updated: float


class NicknameCache:
    """Display names by Matrix ID.

    Entries older than ten minutes are dropped whenever a name is cached,
    and users sharing a display name get their ID appended to it.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, ttl: float = NICKNAME_TTL):
        self._clock = clock
        self._ttl = ttl
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.RLock()

    def get(self, mxid: str) -> str | None:
        with self._lock:
            entry = self._entries.get(mxid)
            return None if entry is None else entry.display_name

    def cache(self, mxid: str, display_name: str) -> str:
        """Store display_name for mxid and return the name to show."""
        now = self._clock()
        conflict = False
        with self._lock:
            expired = []
            for other, entry in self._entries.items():
                if entry.display_name == display_name:
                    conflict = True
                    entry.display_name = f"{display_name} ({other})"
                if now - entry.last_updated > self._ttl:
                    expired.append(other)
            if conflict:
                display_name = f"{display_name} ({mxid})"
            for other in expired:
                del self._entries[other]
            self._entries[mxid] = _Entry(display_name, now)
        return display_name