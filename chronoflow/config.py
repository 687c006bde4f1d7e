"""Configuration loaded from CF_-prefixed environment variables."""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal

ENV_PREFIX = "CF_"

_DEFAULTS = {
    "ENV": "production",
    "TELEGRAM_TIMEOUT": "15s",
    "STORAGE_PATH": "./chrono-flow.db",
    "CHECK_INTERVAL": "10m",
}

_UNIT_NS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_UNIT_CHARS = frozenset("nsuµmh")
_COMPONENT = r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)"
_COMPONENT_RE = re.compile(_COMPONENT, re.ASCII)
_DURATION_RE = re.compile(rf"[+-]?(?:{_COMPONENT})+", re.ASCII)
_INT_RE = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


class ConfigError(Exception):
    """The configuration could not be loaded."""


class EmptyTokenError(ConfigError):
    """The Telegram token is missing or empty."""

    def __init__(self) -> None:
        super().__init__(
            "error getting CF_TELEGRAM_TOKEN: variable not specified or contains an empty string"
        )


@dataclass(frozen=True)
class TelegramSettings:
    """Telegram bot token and long-poll timeout."""

    token: str
    timeout: timedelta


@dataclass(frozen=True)
class Config:
    """Application settings."""

    env: str
    url: str
    storage_path: str
    interval: timedelta
    tg: TelegramSettings
    allowed_ids: tuple[int, ...] = field(default_factory=tuple)


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as "10m", "1h30m" or "1.5s".

    A value with no unit letters is taken as nanoseconds.
    Raises ValueError for malformed input.
    """
    if not any(char in _UNIT_CHARS for char in text):
        text += "ns"
    if not _DURATION_RE.fullmatch(text):
        raise ValueError(f"time: invalid duration {text!r}")
    total = sum(
        (Decimal(number) * _UNIT_NS[unit] for number, unit in _COMPONENT_RE.findall(text)),
        Decimal(0),
    )
    micros = int(total) // 1000
    if text.startswith("-"):
        micros = -micros
    return timedelta(microseconds=micros)


def _parse_int64(text: str) -> int:
    if not _INT_RE.fullmatch(text):
        raise ValueError(f"parsing {text!r}: invalid syntax")
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"parsing {text!r}: value out of range")
    return value


def _parse_ids(raw: str) -> tuple[int, ...]:
    ids = []
    for item in raw.split():
        try:
            ids.append(_parse_int64(item))
        except ValueError as exc:
            raise ValueError(f"error parsing int64: {exc}") from exc
    return tuple(ids)


def load_config(environ: Mapping[str, str] | None = None) -> Config:
    """Build a Config from environment variables.

    Empty variables fall back to their defaults. Raises EmptyTokenError
    when CF_TELEGRAM_TOKEN is missing and ConfigError for invalid values.
    """
    source = os.environ if environ is None else environ

    def get(key: str) -> str:
        value = source.get(ENV_PREFIX + key, "")
        return value if value else _DEFAULTS.get(key, "")

    def get_duration(key: str) -> timedelta:
        raw = get(key)
        try:
            return parse_duration(raw)
        except ValueError as exc:
            raise ConfigError(f"invalid duration in {ENV_PREFIX}{key}: {exc}") from exc

    token = get("TELEGRAM_TOKEN")
    if not token:
        raise EmptyTokenError()

    try:
        allowed_ids = _parse_ids(get("ALLOWED_CHAT_IDS"))
    except ValueError as exc:
        raise ConfigError(
            f"failed to get allowed IDs from environment variables: {exc}"
        ) from exc

    return Config(
        env=get("ENV"),
        url=get("DEST_URL"),
        storage_path=get("STORAGE_PATH"),
        allowed_ids=allowed_ids,
        interval=get_duration("CHECK_INTERVAL"),
        tg=TelegramSettings(token=token, timeout=get_duration("TELEGRAM_TIMEOUT")),
    )