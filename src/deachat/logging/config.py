"""Persisted logging settings shared by the server and the CLI.

The file is a small JSON object, currently ``{"log_level": "INFO"}``. It
lives at ``$DEACHAT_LOG_CONFIG`` when set, else under ``$DEACHAT_CONFIG_DIR``
(``~/.deachat`` by default) as ``logging.json``.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional, Union

PathArg = Optional[Union[os.PathLike, str]]


def _env_path(var: str) -> Path | None:
    raw = (os.environ.get(var) or "").strip()
    return Path(raw).expanduser() if raw else None


def config_path(config_file: PathArg = None) -> Path:
    if config_file is not None:
        return Path(config_file)
    explicit = _env_path("DEACHAT_LOG_CONFIG")
    if explicit is not None:
        return explicit
    base = _env_path("DEACHAT_CONFIG_DIR") or Path.home() / ".deachat"
    return base / "logging.json"


def load_config(config_file: PathArg = None) -> dict[str, Any]:
    """Read the settings file; anything missing or unparsable reads as ``{}``."""

    try:
        data = json.loads(config_path(config_file).read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def save_config(config: dict[str, Any], config_file: PathArg = None) -> Path:
    path = config_path(config_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    return path


def _level_number(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    number = logging.getLevelName(str(value).strip().upper())
    return number if isinstance(number, int) else None


def load_log_level(config_file: PathArg = None) -> Optional[int]:
    """Return the persisted numeric level, or ``None`` when unset or invalid."""

    value = load_config(config_file).get("log_level")
    return None if value is None else _level_number(value)


def save_log_level(level: str | int, config_file: PathArg = None) -> Path:
    """Persist ``level`` by name and return the settings path.

    Raises
    ------
    ValueError
        If ``level`` is not a known logging level.
    """

    number = _level_number(level)
    if number is None:
        raise ValueError(f"Unknown logging level: {level!r}")
    name = logging.getLevelName(number)
    if not isinstance(name, str) or name.startswith("Level "):
        name = str(number)

    config = load_config(config_file)
    config["log_level"] = name
    return save_config(config, config_file)


__all__ = [
    "config_path",
    "load_config",
    "save_config",
    "load_log_level",
    "save_log_level",
]
