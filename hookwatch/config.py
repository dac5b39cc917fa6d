"""Configuration loader.

Settings cascade, lowest priority first:

1. Built-in DEFAULTS
2. JSON config file (``--config``, ``$HOOKWATCH_CONFIG`` or ``~/.hookwatch/config.json``),
   either at top level or under ``settings.hookwatch``
3. ``HOOKWATCH_*`` environment variables
4. Explicit overrides (CLI flags)

The merged result is validated; out-of-range values raise ConfigInvalid and
are never clamped.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigInvalid

ENV_VARS = {
    "HOOKWATCH_STORE_PATH": "storePath",
    "HOOKWATCH_LOG_PATH": "logPath",
    "HOOKWATCH_DEDUP_MIN_FIRES": "dedupMinFires",
    "HOOKWATCH_DEDUP_THRESHOLD": "dedupThreshold",
    "HOOKWATCH_TOKEN_DIVISOR": "tokenHeuristicDivisor",
    "HOOKWATCH_LOCK_TIMEOUT": "lockTimeout",
    "HOOKWATCH_LOG_LEVEL": "logLevel",
}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def hookwatch_home() -> Path:
    """Per-user directory holding the default log, side-channel log and config."""
    return Path(os.environ.get("HOOKWATCH_HOME", str(Path.home() / ".hookwatch")))


def defaults() -> dict:
    home = hookwatch_home()
    return {
        "storePath": str(home / "events.jsonl"),
        "logPath": str(home / "hookwatch.log"),
        "dedupMinFires": 5,
        "dedupThreshold": 0.8,
        "tokenHeuristicDivisor": 4,
        "lockTimeout": 2.0,
        "pollInterval": 0.5,
        "fsync": False,
        "logLevel": "INFO",
    }


class HookwatchConfig(BaseModel):
    """Validated settings shared by every command."""

    store_path: Path = Field(alias="storePath")
    log_path: Path = Field(alias="logPath")
    dedup_min_fires: int = Field(default=5, alias="dedupMinFires", ge=1)
    dedup_threshold: float = Field(default=0.8, alias="dedupThreshold", gt=0.0, le=1.0)
    token_heuristic_divisor: int = Field(default=4, alias="tokenHeuristicDivisor", ge=1)
    lock_timeout: float = Field(default=2.0, alias="lockTimeout", gt=0.0)
    poll_interval: float = Field(default=0.5, alias="pollInterval", gt=0.0)
    fsync: bool = False
    log_level: str = Field(default="INFO", alias="logLevel")

    model_config = {"populate_by_name": True}

    @field_validator("store_path", "log_path")
    @classmethod
    def _expand(cls, value: Path) -> Path:
        return value.expanduser()

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"must be one of {', '.join(LOG_LEVELS)}")
        return level

    @property
    def log_level_number(self) -> int:
        return logging.getLevelName(self.log_level)


def load_config(
    config_path: "Path | str | None" = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> HookwatchConfig:
    """Build the effective configuration. Raises ConfigInvalid."""
    env = os.environ if environ is None else environ
    effective = defaults()

    file_settings = _read_config_file(config_path, env)
    _layer(effective, file_settings)

    for var, key in ENV_VARS.items():
        value = env.get(var)
        if value is not None and value != "":
            effective[key] = value

    if overrides:
        _layer(effective, overrides)

    try:
        return HookwatchConfig.model_validate(effective)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise ConfigInvalid(f"Invalid configuration: {problems}") from exc


def _read_config_file(config_path: "Path | str | None", env: Mapping[str, str]) -> dict:
    explicit = config_path or env.get("HOOKWATCH_CONFIG")
    path = Path(explicit).expanduser() if explicit else hookwatch_home() / "config.json"

    if not path.exists():
        if explicit:
            raise ConfigInvalid(f"Config file not found: {path}")
        return {}

    try:
        cfg = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as exc:
        raise ConfigInvalid(f"Cannot read config file {path}: {exc}") from exc

    if not isinstance(cfg, dict):
        raise ConfigInvalid(f"Config file {path} must contain a JSON object")

    section = cfg.get("settings", {}).get("hookwatch") if isinstance(cfg.get("settings"), dict) else None
    if section is None:
        return {k: v for k, v in cfg.items() if k != "settings"}
    if not isinstance(section, dict):
        raise ConfigInvalid(f"settings.hookwatch in {path} must be a JSON object")
    return section


def _layer(effective: dict, settings: Mapping[str, Any]) -> None:
    """Lay one source over the effective settings; None leaves a key unset."""
    effective.update((key, value) for key, value in settings.items() if value is not None)
