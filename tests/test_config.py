import base64
from datetime import datetime, timezone

import pytest

from chatbridge.config import (
    PARENT_ID_NOT_FOUND,
    ChannelInfo,
    Config,
    FileInfo,
    Message,
    OverrideConfig,
    config_from_string,
    detect_config_type,
    get_icon_url,
    load_config,
    message_from_dict,
)

TOML = """
[general]
MediaDownloadSize = 500
MediaServerDownload = "https://media.example.com"

[irc.libera]
Nick = "bridgebot"
UseTLS = "true"
MessageDelay = "250"
RunCommands = "one two"
ReplaceNicks = [["alpha", "beta"], ["gamma", "delta"]]
"""


def test_parent_not_found_and_valid():
    msg = Message(parent_id=PARENT_ID_NOT_FOUND)
    assert msg.parent_not_found() is True
    assert msg.parent_valid() is False
    assert Message(parent_id="abc").parent_valid() is True
    assert Message().parent_valid() is False


@pytest.mark.parametrize(
    "path,expected",
    [("a.json", "json"), ("a.yaml", "yaml"), ("a.yml", "yaml"), ("a.toml", "toml"), ("a.conf", "toml")],
)
def test_detect_config_type(path, expected):
    assert detect_config_type(path) == expected


def test_lookup_is_case_insensitive():
    cfg = config_from_string(TOML)
    assert cfg.get_string("irc.libera.Nick") == "bridgebot"
    assert cfg.get_string("IRC.LIBERA.NICK") == "bridgebot"
    assert cfg.is_key_set("irc.libera.nick")
    assert not cfg.is_key_set("irc.libera.missing")
    assert cfg.get_string("irc.libera.missing") is None


def test_conversions():
    cfg = config_from_string(TOML)
    assert cfg.get_bool("irc.libera.UseTLS") is True
    assert cfg.get_int("irc.libera.MessageDelay") == 250
    assert cfg.get_string("general.MediaDownloadSize") == "500"
    assert cfg.get_string_slice("irc.libera.RunCommands") == ["one", "two"]


def test_string_slice_2d():
    cfg = config_from_string(TOML)
    assert cfg.get_string_slice_2d("irc.libera.ReplaceNicks") == [["alpha", "beta"], ["gamma", "delta"]]
    assert cfg.get_string_slice_2d("irc.libera.Nick") is None
    assert cfg.get_string_slice_2d("nothing.here") is None


def test_set_overrides_value():
    cfg = config_from_string(TOML)
    cfg.set("api.local.RemoteNickFormat", "{NICK}")
    assert cfg.get_string("api.local.remotenickformat") == "{NICK}"
    cfg.set("irc.libera.Nick", "other")
    assert cfg.get_string("irc.libera.Nick") == "other"


def test_environment_overrides_file(monkeypatch):
    cfg = config_from_string(TOML)
    monkeypatch.setenv("MATTERBRIDGE_IRC_LIBERA_NICK", "fromenv")
    assert cfg.get_string("irc.libera.Nick") == "fromenv"
    monkeypatch.setenv("MATTERBRIDGE_IRC_LIBERA_SHOWJOINPART", "1")
    assert cfg.is_key_set("irc.libera.ShowJoinPart")
    assert cfg.get_bool("irc.libera.ShowJoinPart") is True


def test_json_and_yaml():
    json_cfg = config_from_string('{"General": {"Nick": "j"}}', "json")
    yaml_cfg = config_from_string("general:\n  nick: y\n", "yaml")
    assert json_cfg.get_string("general.nick") == "j"
    assert yaml_cfg.get_string("General.Nick") == "y"


def test_invalid_config_raises():
    with pytest.raises(ValueError):
        config_from_string("[general", "toml")
    with pytest.raises(ValueError):
        config_from_string("{}", "ini")


def test_general_from_string_has_no_default_size():
    cfg = config_from_string("[general]\nNick = 'x'\n")
    general = cfg.general()
    assert general.media_download_size == 0
    assert general.nick == "x"


def test_load_config_sets_default_media_size(tmp_path):
    path = tmp_path / "bridge.toml"
    path.write_text("[general]\nMediaServerDownload = 'https://media.example.com'\n")
    general = load_config(path).general()
    assert general.media_download_size == 1000000
    assert general.media_server_download == "https://media.example.com"


def test_load_config_keeps_configured_size(tmp_path):
    path = tmp_path / "bridge.toml"
    path.write_text(TOML)
    assert load_config(path).general().media_download_size == 500


def test_load_config_missing_file(tmp_path):
    with pytest.raises(OSError):
        load_config(tmp_path / "absent.toml")


def test_override_config():
    base = config_from_string(TOML)
    cfg = OverrideConfig(base, {"irc.libera.Nick": "patched", "flag": True})
    assert cfg.get_string("irc.libera.Nick") == "patched"
    assert cfg.get_bool("flag") is True
    assert cfg.is_key_set("flag")
    assert cfg.get_int("irc.libera.MessageDelay") == 250
    with pytest.raises(TypeError):
        cfg.get_int("irc.libera.Nick")


def test_get_icon_url():
    msg = Message(account="irc.libera", username="alice")
    url = get_icon_url(msg, "https://icons.example.com/{PROTOCOL}/{BRIDGE}/{NICK}.png")
    assert url == "https://icons.example.com/irc/libera/alice.png"
    with pytest.raises(ValueError):
        get_icon_url(Message(account="nodot"), "{NICK}")


def test_message_round_trip():
    ts = datetime(2021, 5, 4, 3, 2, 1, tzinfo=timezone.utc)
    msg = Message(text="hi", channel="api", username="bob", user_id="u1", account="api.local",
                  event="", parent_id="p", timestamp=ts, id="42", thread_id="t")
    data = msg.to_dict()
    assert data["userid"] == "u1"
    assert data["ThreadID"] == "t"
    assert message_from_dict(data) == msg


def test_message_from_dict_ignores_key_case():
    msg = message_from_dict({"TEXT": "x", "UserID": "u", "Timestamp": None})
    assert msg.text == "x"
    assert msg.user_id == "u"
    assert msg.timestamp is None


def test_message_without_timestamp_round_trip():
    data = Message(text="x").to_dict()
    assert message_from_dict(data).timestamp is None
    assert data["Extra"] is None


def test_file_info_data_encoded():
    payload = b"\x00\x01binary"
    msg = Message(extra={"file": [FileInfo(name="f.bin", data=payload)]})
    encoded = msg.to_dict()["Extra"]["file"][0]
    assert encoded["Name"] == "f.bin"
    assert base64.b64decode(encoded["Data"]) == payload


def test_channel_info_defaults_independent():
    first, second = ChannelInfo(), ChannelInfo()
    first.same_channel["x"] = True
    assert second.same_channel == {}
    assert first.options.webhook_url == ""
    assert first.options is not second.options