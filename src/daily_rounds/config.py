"""daily_rounds configuration helpers."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytz
import yaml

from daily_rounds.classes.round import MIN_PLAYERS
from daily_rounds.paths import project_file

CONFIG_FILE = "config.yaml"

# field name -> environment variable overriding it
ENV_OVERRIDES = {
    "require_keyword": "REQUIRE_KEYWORD",
    "training_count": "PLAYER_COUNT",
    "max_finalists": "MAX_FINALISTS",
    "max_training": "MAX_TRAINING",
    "access_token": "IG_ACCESS_TOKEN",
    "feed_base_url": "FEED_BASE_URL",
    "feed_timeout_sec": "FEED_TIMEOUT_SEC",
    "feed_retries": "FEED_RETRIES",
    "rounds_db": "ROUNDS_DB",
    "round_timezone": "ROUND_TIMEZONE",
}

INT_FIELDS = ("training_count", "max_finalists", "max_training", "feed_timeout_sec", "feed_retries")


@dataclass(frozen=True)
class Settings:
    require_keyword: str = "in"
    training_count: int = 50
    max_finalists: int = 100
    max_training: int = 50
    access_token: str = ""
    feed_base_url: str = "https://graph.instagram.com"
    feed_timeout_sec: int = 15
    feed_retries: int = 0
    rounds_db: str = "rounds.db"
    round_timezone: str = "UTC"

    def __post_init__(self) -> None:
        object.__setattr__(self, "require_keyword", (self.require_keyword or "").strip().lower())
        for name in ("max_finalists", "max_training"):
            if getattr(self, name) < MIN_PLAYERS:
                raise ValueError(f"{name} must be at least {MIN_PLAYERS}")
        if self.feed_timeout_sec <= 0:
            raise ValueError("feed_timeout_sec must be a positive number of seconds")
        if self.feed_retries < 0:
            raise ValueError("feed_retries cannot be negative")
        try:
            pytz.timezone(self.round_timezone)
        except pytz.UnknownTimeZoneError as exc:
            raise ValueError(f"Unknown round_timezone '{self.round_timezone}'") from exc

    @property
    def tz(self) -> pytz.BaseTzInfo:
        return pytz.timezone(self.round_timezone)


def load_config_file(path: Path) -> dict[str, Any]:
    """Read the optional YAML config file; a missing file yields no overrides."""
    if not path.is_file():
        return {}
    with path.open(encoding="utf-8") as fp:
        data = yaml.safe_load(fp) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping")
    return data


def _coerce(name: str, value: Any) -> Any:
    if name in INT_FIELDS:
        try:
            return int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"{name} must be an integer, got {value!r}") from exc
    return "" if value is None else str(value)


def load_settings(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Build Settings from defaults, then config.yaml, then environment variables."""
    env = os.environ if environ is None else environ
    known = {f.name for f in dataclasses.fields(Settings)}

    values: dict[str, Any] = {}
    for key, value in load_config_file(config_path or project_file(CONFIG_FILE)).items():
        if key in known:
            values[key] = _coerce(key, value)

    for name, env_var in ENV_OVERRIDES.items():
        raw = env.get(env_var)
        if raw is not None and raw != "":
            values[name] = _coerce(name, raw)
        elif raw == "" and name == "require_keyword":
            # an explicitly empty keyword means "accept every comment"
            values[name] = ""

    return Settings(**values)
