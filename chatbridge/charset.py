"""Decoding of text in legacy Asian character sets."""

from __future__ import annotations

_ENCODINGS = {
    "utf-8": "utf-8",
    "iso-2022-jp": "iso2022_jp",
    "big5": "big5",
    "gbk": "gbk",
    "euc-kr": "euc_kr",
    "gb2312": "hz",
    "shift-jis": "shift_jis",
    "euc-jp": "euc_jp",
    "gb18030": "gb18030",
}


def to_utf8(charset: str, data: bytes | str) -> str:
    """Decode data from charset; unknown charsets are taken as UTF-8."""
    if isinstance(data, str):
        data = data.encode("utf-8", "surrogateescape")
    codec = _ENCODINGS.get(charset, "utf-8")
    return data.decode(codec, "replace")