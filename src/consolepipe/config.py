"""XDG config loading."""

from __future__ import annotations

import codecs
import os
import sys
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing_extensions import TypedDict

if sys.version_info >= (3, 11):
    import tomllib
else:  # pragma: no cover
    import tomli as tomllib

from consolepipe.logging import LOG_LEVELS, normalize_level

DEFAULT_CONFIG_PATH = Path("~/.config/consolepipe/config.toml").expanduser()
DEFAULT_IDLE_INTERVAL_SECONDS = 0.2
DEFAULT_READ_SIZE = 1024
DEFAULT_DRAIN_TIMEOUT_SECONDS = 2.0
DEFAULT_ENCODING = "utf-8"
DEFAULT_ENCODING_ERRORS = "replace"
ENCODING_ENV = "CONSOLEPIPE_ENCODING"
LOG_LEVEL_ENV = "CONSOLEPIPE_LOG_LEVEL"

_VALID_ENCODING_ERRORS = {"strict", "replace", "ignore", "backslashreplace"}
_VALID_NEWLINES = {"\n", "\r\n"}


class RawConfig(TypedDict, total=False):
    idle_interval_seconds: float
    read_size: int
    encoding: str
    encoding_errors: str
    newline: str
    drain_timeout_seconds: float
    show_diagnostics: bool
    echo_input: bool
    suppress_echo: bool
    log_level: str


def _is_known_encoding(value: str) -> bool:
    try:
        codecs.lookup(value)
    except LookupError:
        return False
    return True


class AppConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    idle_interval_seconds: float = Field(default=DEFAULT_IDLE_INTERVAL_SECONDS, gt=0, le=10)
    read_size: int = Field(default=DEFAULT_READ_SIZE, ge=1, le=1 << 20)
    encoding: str = DEFAULT_ENCODING
    encoding_errors: str = DEFAULT_ENCODING_ERRORS
    newline: str = os.linesep
    drain_timeout_seconds: float = Field(default=DEFAULT_DRAIN_TIMEOUT_SECONDS, ge=0, le=60)
    show_diagnostics: bool = True
    echo_input: bool = False
    suppress_echo: bool = True
    log_level: str = "WARN"

    @field_validator("encoding")
    @classmethod
    def _validate_encoding(cls, value: str) -> str:
        if not _is_known_encoding(value):
            raise ValueError(f"Unknown encoding: {value}")
        return value

    @field_validator("encoding_errors")
    @classmethod
    def _validate_encoding_errors(cls, value: str) -> str:
        if value not in _VALID_ENCODING_ERRORS:
            raise ValueError(f"Invalid encoding error handler: {value}")
        return value

    @field_validator("newline")
    @classmethod
    def _validate_newline(cls, value: str) -> str:
        if value not in _VALID_NEWLINES:
            raise ValueError(f"Invalid newline: {value!r}")
        return value

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        normalized = normalize_level(value)
        if normalized not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {value}")
        return normalized

    def session_options(self) -> SessionOptions:
        return SessionOptions(
            idle_interval_seconds=self.idle_interval_seconds,
            read_size=self.read_size,
            encoding=self.encoding,
            encoding_errors=self.encoding_errors,
            newline=self.newline,
            drain_timeout_seconds=self.drain_timeout_seconds,
        )


@dataclass(frozen=True)
class SessionOptions:
    idle_interval_seconds: float = DEFAULT_IDLE_INTERVAL_SECONDS
    read_size: int = DEFAULT_READ_SIZE
    encoding: str = DEFAULT_ENCODING
    encoding_errors: str = DEFAULT_ENCODING_ERRORS
    newline: str = os.linesep
    drain_timeout_seconds: float = DEFAULT_DRAIN_TIMEOUT_SECONDS


def get_config_path(path: str | Path | None = None) -> Path:
    if path is None:
        return DEFAULT_CONFIG_PATH
    return Path(path).expanduser()


def _positive_number(value: object, *, upper: float) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if value <= 0 or value > upper:
        return None
    return float(value)


def _sanitize(raw: RawConfig | dict[str, object]) -> AppConfig:
    cfg = AppConfig()

    idle_interval = _positive_number(raw.get("idle_interval_seconds"), upper=10)
    if idle_interval is not None:
        cfg.idle_interval_seconds = idle_interval

    read_size = raw.get("read_size", cfg.read_size)
    if isinstance(read_size, int) and not isinstance(read_size, bool) and 1 <= read_size <= 1 << 20:
        cfg.read_size = read_size

    encoding = raw.get("encoding", cfg.encoding)
    if isinstance(encoding, str) and _is_known_encoding(encoding):
        cfg.encoding = encoding

    encoding_errors = raw.get("encoding_errors", cfg.encoding_errors)
    if isinstance(encoding_errors, str) and encoding_errors in _VALID_ENCODING_ERRORS:
        cfg.encoding_errors = encoding_errors

    newline = raw.get("newline", cfg.newline)
    if isinstance(newline, str) and newline in _VALID_NEWLINES:
        cfg.newline = newline

    drain_timeout = raw.get("drain_timeout_seconds", cfg.drain_timeout_seconds)
    if (
        isinstance(drain_timeout, (int, float))
        and not isinstance(drain_timeout, bool)
        and 0 <= drain_timeout <= 60
    ):
        cfg.drain_timeout_seconds = float(drain_timeout)

    for flag in ("show_diagnostics", "echo_input", "suppress_echo"):
        value = raw.get(flag)
        if isinstance(value, bool):
            setattr(cfg, flag, value)

    log_level = raw.get("log_level", cfg.log_level)
    if isinstance(log_level, str) and normalize_level(log_level) in LOG_LEVELS:
        cfg.log_level = log_level

    env_encoding = os.getenv(ENCODING_ENV, "").strip()
    if env_encoding and _is_known_encoding(env_encoding):
        cfg.encoding = env_encoding
    env_level = os.getenv(LOG_LEVEL_ENV, "").strip()
    if env_level and normalize_level(env_level) in LOG_LEVELS:
        cfg.log_level = env_level

    return cfg


def load_config(path: str | Path | None = None) -> AppConfig:
    resolved = get_config_path(path)
    if not resolved.exists():
        return _sanitize({})
    try:
        with resolved.open("rb") as handle:
            raw = tomllib.load(handle)
    except (tomllib.TOMLDecodeError, OSError):
        return _sanitize({})
    if not isinstance(raw, dict):
        return _sanitize({})
    return _sanitize(raw)
