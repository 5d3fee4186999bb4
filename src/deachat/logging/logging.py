# deachat/logging/logging.py
import logging
import os
import sys
from pathlib import Path

from deachat.logging.config import load_log_level

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Names of loggers that already carry deachat handlers
_configured: set[str] = set()


def _resolve_log_dir(log_dir=None) -> Path:
    if log_dir is not None:
        return Path(log_dir)
    raw = (os.environ.get("DEACHAT_LOG_DIR") or "").strip()
    if raw:
        return Path(raw).expanduser()
    return Path.home() / ".deachat" / "logs"


def _resolve_log_file(log_file=None, log_dir=None) -> Path:
    if log_file is not None:
        return Path(log_file)
    return _resolve_log_dir(log_dir) / "deachat.log"


def ensure_log_dir(log_dir=None) -> Path:
    path = _resolve_log_dir(log_dir)
    path.mkdir(parents=True, exist_ok=True)
    return path


def _file_handler(path: Path, formatter, *, filemode, encoding) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, mode=filemode, encoding=encoding)
    handler.setFormatter(formatter)
    return handler


def _console_handler(formatter) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    return handler


def get_logger(
    name="deachat",
    level=None,
    log_file=None,
    log_dir=None,
    console=True,
    filemode="a",
    fmt=LOG_FORMAT,
    datefmt=DATE_FORMAT,
    encoding="utf-8",
    propagate=False,
):
    """Return the named logger, attaching handlers on first use.

    The first call for ``name`` decides its configuration; later calls return
    the same logger untouched until :func:`reset_logger` is called.

    - level: numeric level; defaults to the persisted level, else INFO
    - log_file / log_dir: defaults to ``$DEACHAT_LOG_DIR/deachat.log``
      (``~/.deachat/logs`` when unset)
    - console: also write to stderr
    """
    logger = logging.getLogger(name)
    if name in _configured:
        return logger

    if level is None:
        level = load_log_level() or logging.INFO
    formatter = logging.Formatter(fmt=fmt, datefmt=datefmt)

    logger.setLevel(level)
    logger.propagate = propagate
    logger.addHandler(
        _file_handler(
            _resolve_log_file(log_file, log_dir),
            formatter,
            filemode=filemode,
            encoding=encoding,
        )
    )
    if console:
        logger.addHandler(_console_handler(formatter))

    _configured.add(name)
    return logger


def reset_logger(name=None):
    """Detach and close handlers so the next :func:`get_logger` reconfigures.

    With no ``name`` every logger configured through :func:`get_logger` is
    reset.

    >>> logger = get_logger("demo", level=logging.DEBUG)
    >>> reset_logger("demo")
    >>> logger = get_logger("demo", level=logging.INFO)
    """
    names = list(_configured) if name is None else [name]
    for item in names:
        logger = logging.getLogger(item)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        _configured.discard(item)


def get_configured_level(name="deachat"):
    """Return the effective level name of ``name`` (e.g. ``"INFO"``)."""

    return logging.getLevelName(logging.getLogger(name).getEffectiveLevel())
