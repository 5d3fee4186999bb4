"""Load ``KEY=value`` env files given on the command line.

The server reads all of its settings (``GEMINI_API_KEY``, ``DEACHAT_*``) from
the environment. ``deachat --env-file .env api start`` lets a local ``.env``
feed those settings without exporting them in the shell first.
"""

from __future__ import annotations

import os
import re
from collections.abc import Iterable, Sequence
from pathlib import Path

_FLAG = "--env-file"

# "#" opens a comment only at the start of the value or after whitespace
_INLINE_COMMENT = re.compile(r"(^|\s)#")


def extract_env_files(argv: Sequence[str]) -> tuple[list[str], list[str]]:
    """Split ``--env-file`` arguments out of argv.

    Both ``--env-file path`` and ``--env-file=path`` are accepted anywhere in
    argv, so the flag may follow a subcommand.
    """

    env_files: list[str] = []
    remaining: list[str] = []
    tokens = iter(argv)
    for token in tokens:
        if token == _FLAG:
            value = next(tokens, None)
            if value is None:
                raise SystemExit(f"{_FLAG} requires a file path")
            env_files.append(value)
        elif token.startswith(_FLAG + "="):
            env_files.append(token.partition("=")[2])
        else:
            remaining.append(token)
    return env_files, remaining


def _parse_value(raw: str) -> str:
    value = raw.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        return value[1:-1]
    match = _INLINE_COMMENT.search(value)
    if match:
        value = value[: match.start()]
    return value.rstrip()


def parse_env_file_text(text: str) -> dict[str, str]:
    parsed: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        line = line.removeprefix("export ").lstrip()

        key, sep, raw_value = line.partition("=")
        key = key.strip()
        if sep and key:
            parsed[key] = _parse_value(raw_value)
    return parsed


def load_env_files(paths: Iterable[str | Path], *, override: bool = True) -> dict[str, str]:
    """Load env files in order into ``os.environ``; later files win."""

    merged: dict[str, str] = {}
    for path in paths:
        resolved = Path(path).expanduser()
        if not resolved.is_file():
            raise SystemExit(f"{_FLAG} does not exist: {resolved}")
        merged.update(parse_env_file_text(resolved.read_text(encoding="utf-8")))

    for key, value in merged.items():
        if override or key not in os.environ:
            os.environ[key] = value
    return merged
