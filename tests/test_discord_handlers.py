from datetime import datetime

import pytest

from chatbridge.config import EVENT_JOIN_LEAVE
from chatbridge.discord_handlers import (
    Embed,
    avatar_url,
    content_with_attachments,
    handle_embed,
    join_leave_message,
    replace_mention_tokens,
    reply_text,
)


@pytest.mark.parametrize(
    "embed, expected",
    [
        (Embed(), ""),
        (Embed(title="blah"), " embed: blah\n"),
        (Embed(title="blah", description="blah2"), " embed: blah - blah2\n"),
        (
            Embed(title="blah", description="blah2", url="blah3"),
            " embed: blah - blah2 - blah3\n",
        ),
        (Embed(description="blah2", url="blah3"), " embed: blah2 - blah3\n"),
        (Embed(url="blah3"), " embed: blah3\n"),
    ],
    ids=["allempty", "one", "two", "three", "twob", "oneb"],
)
def test_handle_embed(embed, expected):
    assert handle_embed(embed) == expected


def test_avatar_url():
    assert avatar_url("42", "abc") == "https://cdn.discordapp.com/avatars/42/abc.jpg"


def test_content_with_attachments():
    assert content_with_attachments("hi", ["a", "b"]) == "hi\na\nb"
    assert content_with_attachments("hi", []) == "hi"


def test_join_message_prefers_nick():
    msg = join_leave_message("discord.test", "user", "Nick", True)
    assert msg.text == "Nick joins"
    assert msg.username == "system"
    assert msg.event == EVENT_JOIN_LEAVE
    assert msg.account == "discord.test"


def test_leave_message_uses_username_without_nick():
    msg = join_leave_message("discord.test", "user", "", False)
    assert msg.text == "user leaves"


def test_reply_text():
    result = reply_text(
        "bob", "original words", "answer", "icon", "#general", datetime(2023, 5, 6, 7, 8, 9)
    )
    assert result == "@bob|||original words|||answer|||icon|||#general|||2023-05-06 07:08:09"


def test_replace_mention_tokens():
    content = "hi <@123> and <@!123>, not <@1234>"
    assert replace_mention_tokens(content, "123", "bob") == "hi @bob and @bob, not <@1234>"


def test_replace_mention_tokens_nick_with_backslash():
    assert replace_mention_tokens("<@1>", "1", r"a\1b") == r"@a\1b"