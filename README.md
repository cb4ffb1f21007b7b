# chatbridge

Building blocks for relaying messages between chat networks. The package
holds the shared pieces a gateway needs: a message model, a layered
configuration, text helpers for clipping and splitting messages, charset
conversion, and protocol-specific utilities for IRC, Discord, Matrix and
Mattermost.

## Modules

| Module | What it offers |
| --- | --- |
| `chatbridge.config` | `Message`, `FileInfo`, `ChannelInfo`, `ChannelOptions`, `ChannelMember`, `GeneralSettings`, `Config`, `OverrideConfig`, `load_config`, `config_from_string`, `detect_config_type`, `message_from_dict`, `get_icon_url` |
| `chatbridge.helper` | `get_sub_lines`, `clip_message`, `remove_empty_new_lines`, `parse_markdown`, `download_file`, `download_file_auth_rocket`, `handle_extra`, `handle_download_size`, `handle_download_data`, `get_avatar`, `convert_webp_to_png` |
| `chatbridge.lottie` | Telegram sticker (`.tgs`) conversion through the external `lottie_convert.py` tool |
| `chatbridge.charset` | `to_utf8` for UTF-8 and the common East Asian encodings |
| `chatbridge.discord_helpers` | channel and member lookup (`GuildDirectory`), mention rewriting, `enumerate_usernames`, `replace_emotes`, `split_url`, `allowed_mentions` |
| `chatbridge.discord_handlers` | `handle_embed`, `reply_text`, `join_leave_message`, `avatar_url`, `replace_mention_tokens` |
| `chatbridge.matrix` | `new_matrix_username`, `NicknameCache`, `parse_http_error`, rate-limit aware `retry` |
| `chatbridge.mattermost` | action detection, `channel_id_from_name`, `cache_avatar`, `webhook_payloads` |
| `chatbridge.irc` | flood-control limits (`resolve_limits`), `sanitize_nick`, `colorize_nick`, `names_messages`, `irc_user_name`, `split_message`, `should_skip_privmsg` |

## Configuration

Configuration is read from TOML, JSON or YAML; `detect_config_type` picks
the format from the file extension and falls back to TOML. Keys are dotted
and case-insensitive. Values set with `Config.set` take precedence over
environment variables (`MATTERBRIDGE_` followed by the key, with dots and
dashes turned into underscores), which take precedence over the file.

```python
from chatbridge.config import config_from_string

cfg = config_from_string(
    """
    [general]
    RemoteNickFormat = "[{PROTOCOL}] <{NICK}> "

    [irc.libera]
    Server = "irc.example.com:6697"
    Nick = "relaybot"
    """,
    "toml",
)

cfg.is_key_set("irc.libera.Nick")      # True
cfg.get_string("irc.libera.Server")    # 'irc.example.com:6697'
cfg.get_string("irc.libera.Missing")   # None
```

`load_config(path)` does the same for a file on disk, defaults
`MediaDownloadSize` to 1000000 bytes, and adds a log file handler when
`general.LogFile` is set. `OverrideConfig` wraps a configuration and lets
individual keys be replaced, which is handy in tests.

## Splitting and clipping text

Networks such as IRC limit the length of a line. `get_sub_lines` splits a
message on newlines, drops empty lines and, given a maximum byte length,
cuts long lines without breaking multi-byte characters:

```python
from chatbridge.helper import get_sub_lines, clip_message

get_sub_lines("I\ncan't\nget\nno\nsatisfaction!", 64, "")
# ['I', "can't", 'get', 'no', 'satisfaction!']

clip_message("a very long message ...", 1950, "")
```

An empty clipping message stands for the default `" <clipped message>"`.

## Messages

`Message` is the unit passed between bridges and serialises to a JSON-ready
dictionary:

```python
from chatbridge.config import Message, message_from_dict

msg = Message(text="hello", username="alice", channel="general")
same = message_from_dict(msg.to_dict())
assert same == msg
```

## Sticker conversion

`chatbridge.lottie.convert_tgs` runs the `lottie_convert.py` command, which
must be installed separately and on the `PATH`; `can_convert_tgs` raises
`LottieError` when it is not usable. Only `png` and `webp` output is
supported.

## What this package does not do

It holds no protocol clients: it does not connect to IRC, Discord, Matrix,
Mattermost or any other chat network, and it has no gateway that routes
messages between accounts. There is no command to run and no HTTP or
WebSocket endpoint. The modules supply the configuration, message model and
text handling on which such a program would be built.

## Running the tests

Install the package with its `test` extra and run `pytest` from the project
directory.