import pytest

from chatbridge.matrix import (
    MatrixHTTPError,
    NicknameCache,
    avatar_thumbnail_url,
    contains_attachment,
    new_matrix_username,
    parse_http_error,
    ratelimit_delay,
    retry,
)


def test_plain_username():
    uut = new_matrix_username("MyUser")
    assert uut.formatted == "MyUser"
    assert uut.plain == "MyUser"


def test_html_username():
    uut = new_matrix_username("<b>MyUser</b>")
    assert uut.formatted == "<b>MyUser</b>"
    assert uut.plain == "MyUser"


def test_fancy_username():
    uut = new_matrix_username("<MyUser>")
    assert uut.formatted == "&lt;MyUser&gt;"
    assert uut.plain == "<MyUser>"


def test_username_quotes_are_escaped():
    uut = new_matrix_username("a'b\"c&d")
    assert uut.formatted == "a&#39;b&#34;c&amp;d"
    assert uut.plain == "a'b\"c&d"


def test_parse_http_error():
    err = parse_http_error(
        b'{"errcode":"M_LIMIT_EXCEEDED","error":"Too many requests","retry_after_ms":2000}'
    )
    assert err.errcode == "M_LIMIT_EXCEEDED"
    assert err.error == "Too many requests"
    assert err.retry_after_ms == 2000


@pytest.mark.parametrize("body", [b"not json", b"[]", b'{"retry_after_ms":"x"}'])
def test_parse_http_error_failure(body):
    err = parse_http_error(body)
    assert err.error == "unmarshal failed"
    assert err.errcode == ""


def test_ratelimit_delay():
    assert ratelimit_delay(MatrixHTTPError("M_LIMIT_EXCEEDED", "", 1500)) == 1.5
    assert ratelimit_delay(MatrixHTTPError("M_FORBIDDEN", "", 1500)) is None
    assert ratelimit_delay(ValueError("boom")) is None


def test_retry_sleeps_while_ratelimited():
    calls = []
    sleeps = []

    def func():
        calls.append(1)
        if len(calls) < 3:
            raise MatrixHTTPError("M_LIMIT_EXCEEDED", "slow down", 1500)
        return 42

    assert retry(func, sleep=sleeps.append) == 42
    assert sleeps == [1.5, 1.5]
    assert len(calls) == 3


def test_retry_raises_other_errors():
    sleeps = []

    def func():
        raise MatrixHTTPError("M_FORBIDDEN", "no", 0)

    with pytest.raises(MatrixHTTPError) as info:
        retry(func, sleep=sleeps.append)
    assert info.value.errcode == "M_FORBIDDEN"
    assert sleeps == []


@pytest.mark.parametrize(
    "content,expected",
    [
        ({"msgtype": "m.image"}, True),
        ({"msgtype": "m.video"}, True),
        ({"msgtype": "m.file"}, True),
        ({"msgtype": "m.text"}, False),
        ({}, False),
    ],
)
def test_contains_attachment(content, expected):
    assert contains_attachment(content) is expected


def test_avatar_thumbnail_url():
    url = avatar_thumbnail_url("https://matrix.example.com", "mxc://example.com/abc")
    assert url == (
        "https://matrix.example.com/_matrix/media/r0/thumbnail/example.com/abc"
        "?width=37&height=37&method=crop"
    )
    assert avatar_thumbnail_url("https://matrix.example.com", "") == ""


class _Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_nickname_cache_stores_and_returns():
    cache = NicknameCache(clock=_Clock())
    assert cache.get("@a:example.com") is None
    assert cache.cache("@a:example.com", "Alice") == "Alice"
    assert cache.get("@a:example.com") == "Alice"


def test_nickname_cache_conflict_appends_ids():
    cache = NicknameCache(clock=_Clock())
    cache.cache("@a:example.com", "Alice")
    assert cache.cache("@b:example.com", "Alice") == "Alice (@b:example.com)"
    assert cache.get("@a:example.com") == "Alice (@a:example.com)"


def test_nickname_cache_expires_old_entries():
    clock = _Clock()
    cache = NicknameCache(clock=clock)
    cache.cache("@a:example.com", "Alice")
    clock.now = 11 * 60
    assert cache.cache("@b:example.com", "Bob") == "Bob"
    assert cache.get("@a:example.com") is None
    assert cache.get("@b:example.com") == "Bob"