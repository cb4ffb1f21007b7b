"""Bridge configuration: messages, channel descriptions and key lookups."""

from __future__ import annotations

import base64
import json
import logging
import os
import threading
import tomllib
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Mapping

import yaml

logger = logging.getLogger("chatbridge.config")

EVENT_JOIN_LEAVE = "join_leave"
EVENT_TOPIC_CHANGE = "topic_change"
EVENT_FAILURE = "failure"
EVENT_FILE_FAILURE_SIZE = "file_failure_size"
EVENT_AVATAR_DOWNLOAD = "avatar_download"
EVENT_REJOIN_CHANNELS = "rejoin_channels"
EVENT_USER_ACTION = "user_action"
EVENT_MSG_DELETE = "msg_delete"
EVENT_FILE_DELETE = "file_delete"
EVENT_API_CONNECTED = "api_connected"
EVENT_USER_TYPING = "user_typing"
EVENT_GET_CHANNEL_MEMBERS = "get_channel_members"
EVENT_NOTICE_IRC = "notice_irc"

PARENT_ID_NOT_FOUND = "msg-parent-not-found"

DEFAULT_MEDIA_DOWNLOAD_SIZE = 1000000

_ZERO_TIME = "0001-01-01T00:00:00Z"


@dataclass
class FileInfo:
    """A file attached to a message."""

    name: str = ""
    data: bytes | None = None
    comment: str = ""
    url: str = ""
    size: int = 0
    avatar: bool = False
    sha: str = ""
    native_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "Name": self.name,
            "Data": None if self.data is None else base64.b64encode(self.data).decode("ascii"),
            "Comment": self.comment,
            "URL": self.url,
            "Size": self.size,
            "Avatar": self.avatar,
            "SHA": self.sha,
            "NativeID": self.native_id,
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, FileInfo):
        return value.to_dict()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    return value


def _format_timestamp(ts: datetime | None) -> str:
    if ts is None:
        return _ZERO_TIME
    text = ts.isoformat()
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


def _parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(str(value))
    if parsed.year == 1:
        return None
    return parsed


# JSON name -> attribute name, in wire order.
_MESSAGE_JSON = (
    ("text", "text"),
    ("channel", "channel"),
    ("username", "username"),
    ("userid", "user_id"),
    ("avatar", "avatar"),
    ("account", "account"),
    ("event", "event"),
    ("protocol", "protocol"),
    ("gateway", "gateway"),
    ("parent_id", "parent_id"),
    ("timestamp", "timestamp"),
    ("id", "id"),
    ("Extra", "extra"),
    ("ThreadID", "thread_id"),
)


@dataclass
class Message:
    """A chat message passed between bridges."""

    text: str = ""
    channel: str = ""
    username: str = ""
    user_id: str = ""
    avatar: str = ""
    account: str = ""
    event: str = ""
    protocol: str = ""
    gateway: str = ""
    parent_id: str = ""
    timestamp: datetime | None = None
    id: str = ""
    extra: dict[str, list[Any]] | None = None
    thread_id: str = ""

    def parent_not_found(self) -> bool:
        return self.parent_id == PARENT_ID_NOT_FOUND

    def parent_valid(self) -> bool:
        return self.parent_id != "" and not self.parent_not_found()

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON representation of the message."""
        result: dict[str, Any] = {}
        for json_name, attr in _MESSAGE_JSON:
            value = getattr(self, attr)
            if attr == "timestamp":
                value = _format_timestamp(value)
            elif attr == "extra":
                value = None if value is None else _jsonable(value)
            result[json_name] = value
        return result


def message_from_dict(data: Mapping[str, Any]) -> Message:
    """Build a Message from its JSON representation; key case is ignored."""
    lowered = {str(k).lower(): v for k, v in data.items()}
    kwargs: dict[str, Any] = {}
    for json_name, attr in _MESSAGE_JSON:
        key = json_name.lower()
        if key not in lowered:
            continue
        value = lowered[key]
        if attr == "timestamp":
            value = _parse_timestamp(value)
        elif attr == "extra":
            value = None if value is None else {k: list(v or []) for k, v in value.items()}
        elif value is None:
            value = ""
        else:
            value = str(value)
        kwargs[attr] = value
    return Message(**kwargs)


@dataclass
class ChannelOptions:
    key: str = ""
    webhook_url: str = ""
    topic: str = ""


@dataclass
class ChannelInfo:
    name: str = ""
    account: str = ""
    direction: str = ""
    id: str = ""
    same_channel: dict[str, bool] = field(default_factory=dict)
    options: ChannelOptions = field(default_factory=ChannelOptions)


@dataclass
class ChannelMember:
    username: str = ""
    nick: str = ""
    user_id: str = ""
    channel_id: str = ""
    channel_name: str = ""


# Conversions mirroring how loosely typed configuration values are read.

_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value in _TRUE
    return False


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        text = value
        if "." in text:
            head, _, tail = text.partition(".")
            if tail.strip("0") == "":
                text = head
        try:
            return int(text, 0)
        except ValueError:
            return 0
    return 0


def _to_string(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        text = format(Decimal(repr(value)), "f")
        if "." in text:
            text = text.rstrip("0").rstrip(".")
        return text
    if isinstance(value, bytes):
        return value.decode("utf-8", "replace")
    return str(value)


def _to_string_slice(value: Any) -> list[str]:
    if isinstance(value, str):
        return value.split()
    if isinstance(value, (list, tuple)):
        return [_to_string(v) for v in value]
    return []


def _lower_keys(data: Mapping[str, Any]) -> dict[str, Any]:
    return {
        str(k).lower(): _lower_keys(v) if isinstance(v, Mapping) else v
        for k, v in data.items()
    }


@dataclass
class GeneralSettings:
    """Settings from the [general] section that apply to every bridge."""

    debug: bool = False
    ignore_failure_on_start: bool = False
    label: str = ""
    log_file: str = ""
    media_convert_tgs: str = ""
    media_convert_webp_to_png: bool = False
    media_download_blacklist: list[str] = field(default_factory=list)
    media_download_path: str = ""
    media_download_size: int = 0
    media_server_download: str = ""
    media_server_upload: str = ""
    nick: str = ""
    no_send_join_part: bool = False
    remote_nick_format: str = ""
    show_join_part: bool = False
    strip_nick: bool = False
    tengo_modify_message: str = ""

    @classmethod
    def _from_mapping(cls, section: Mapping[str, Any]) -> GeneralSettings:
        settings = cls()
        for f in fields(cls):
            key = f.name.replace("_", "")
            if key not in section:
                continue
            raw = section[key]
            current = getattr(settings, f.name)
            if isinstance(current, bool):
                value: Any = _to_bool(raw)
            elif isinstance(current, int):
                value = _to_int(raw)
            elif isinstance(current, list):
                value = _to_string_slice(raw)
            else:
                value = _to_string(raw)
            setattr(settings, f.name, value)
        return settings


_MISSING = object()


class Config:
    """Configuration values looked up by dotted, case-insensitive keys.

    Values set with :meth:`set` win over environment variables, which win
    over the parsed configuration data.
    """

    def __init__(self, data: Mapping[str, Any] | None = None, *, env_prefix: str = "matterbridge"):
        self._lock = threading.RLock()
        self._data = _lower_keys(data or {})
        self._overrides: dict[str, Any] = {}
        self._env_prefix = env_prefix
        self._default_media_download_size = 0

    def _env_name(self, key: str) -> str:
        name = f"{self._env_prefix}_{key}" if self._env_prefix else key
        return name.replace(".", "_").replace("-", "_").upper()

    def _lookup(self, key: str) -> Any:
        lower = key.lower()
        with self._lock:
            if lower in self._overrides:
                return self._overrides[lower]
            env = os.environ.get(self._env_name(lower))
            if env:
                return env
            node: Any = self._data
            for part in lower.split("."):
                if not isinstance(node, Mapping) or part not in node:
                    return _MISSING
                node = node[part]
            return node

    def is_key_set(self, key: str) -> bool:
        return self._lookup(key) is not _MISSING

    def get(self, key: str) -> Any:
        """Return the raw value for key, or None when it is unset."""
        value = self._lookup(key)
        return None if value is _MISSING else value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._overrides[key.lower()] = value

    def get_bool(self, key: str) -> bool | None:
        value = self._lookup(key)
        return None if value is _MISSING else _to_bool(value)

    def get_int(self, key: str) -> int | None:
        value = self._lookup(key)
        return None if value is _MISSING else _to_int(value)

    def get_string(self, key: str) -> str | None:
        value = self._lookup(key)
        return None if value is _MISSING else _to_string(value)

    def get_string_slice(self, key: str) -> list[str] | None:
        value = self._lookup(key)
        return None if value is _MISSING else _to_string_slice(value)

    def get_string_slice_2d(self, key: str) -> list[list[str]] | None:
        value = self._lookup(key)
        if not isinstance(value, list):
            return None
        result = []
        for entry in value:
            if not isinstance(entry, list):
                raise TypeError(f"{key}: expected a list of lists, got {entry!r}")
            row = []
            for item in entry:
                if not isinstance(item, str):
                    raise TypeError(f"{key}: expected strings, got {item!r}")
                row.append(item)
            result.append(row)
        return result

    def general(self) -> GeneralSettings:
        with self._lock:
            section = self._data.get("general")
        settings = GeneralSettings._from_mapping(section if isinstance(section, Mapping) else {})
        if settings.media_download_size == 0:
            settings.media_download_size = self._default_media_download_size
        return settings


class OverrideConfig:
    """A configuration whose values can be replaced per key, for tests."""

    def __init__(self, config: Config, overrides: Mapping[str, Any] | None = None):
        self.config = config
        self.overrides: dict[str, Any] = dict(overrides or {})

    def is_key_set(self, key: str) -> bool:
        return key in self.overrides or self.config.is_key_set(key)

    def get(self, key: str) -> Any:
        if key in self.overrides:
            return self.overrides[key]
        return self.config.get(key)

    def set(self, key: str, value: Any) -> None:
        self.config.set(key, value)

    def general(self) -> GeneralSettings:
        return self.config.general()

    def _override(self, key: str, kind: type) -> Any:
        value = self.overrides[key]
        if not isinstance(value, kind):
            raise TypeError(f"override {key!r} is not a {kind.__name__}: {value!r}")
        return value

    def get_bool(self, key: str) -> bool | None:
        if key in self.overrides:
            return self._override(key, bool)
        return self.config.get_bool(key)

    def get_int(self, key: str) -> int | None:
        if key in self.overrides:
            return self._override(key, int)
        return self.config.get_int(key)

    def get_string(self, key: str) -> str | None:
        if key in self.overrides:
            return self._override(key, str)
        return self.config.get_string(key)

    def get_string_slice(self, key: str) -> list[str] | None:
        if key in self.overrides:
            return self._override(key, list)
        return self.config.get_string_slice(key)

    def get_string_slice_2d(self, key: str) -> list[list[str]] | None:
        if key in self.overrides:
            return self._override(key, list)
        return self.config.get_string_slice_2d(key)


def detect_config_type(path: str | os.PathLike[str]) -> str:
    """Detect JSON and YAML by file extension; anything else is TOML."""
    suffix = Path(path).suffix
    if suffix == ".json":
        return "json"
    if suffix in (".yaml", ".yml"):
        return "yaml"
    return "toml"


def config_from_string(text: str | bytes, config_type: str = "toml") -> Config:
    """Parse configuration text of the given type."""
    if isinstance(text, bytes):
        text = text.decode("utf-8")
    try:
        if config_type == "toml":
            data = tomllib.loads(text)
        elif config_type == "json":
            data = json.loads(text) if text.strip() else {}
        elif config_type == "yaml":
            data = yaml.safe_load(text)
        else:
            raise ValueError(f"unsupported configuration type {config_type!r}")
    except (tomllib.TOMLDecodeError, json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ValueError(f"Failed to parse the configuration: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ValueError("Failed to load the configuration: top level is not a table")
    return Config(data)


def load_config(path: str | os.PathLike[str]) -> Config:
    """Read and parse a configuration file, opening its log file if one is set."""
    content = Path(path).read_bytes()
    config = config_from_string(content, detect_config_type(path))
    config._default_media_download_size = DEFAULT_MEDIA_DOWNLOAD_SIZE
    log_file = config.general().log_file
    if log_file:
        try:
            handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        except OSError:
            logger.warning("Failed to open %s", log_file)
        else:
            os.chmod(log_file, 0o600)
            logger.info("Opening log file %s", log_file)
            logging.getLogger().addHandler(handler)
    return config


def get_icon_url(msg: Message, icon_url: str) -> str:
    """Fill {NICK}, {BRIDGE} and {PROTOCOL} in an icon URL template."""
    info = msg.account.split(".")
    if len(info) < 2:
        raise ValueError(f"account {msg.account!r} is not of the form protocol.name")
    protocol, name = info[0], info[1]
    icon_url = icon_url.replace("{NICK}", msg.username)
    icon_url = icon_url.replace("{BRIDGE}", name)
    return icon_url.replace("{PROTOCOL}", protocol)