"""``deachat logging``: inspect and persist the server's log settings.

The level written by ``set-level`` is picked up by every logger the chat
server creates at its next start.
"""

import logging

from deachat.logging import get_logger, reset_logger
from deachat.logging.config import save_log_level
from deachat.logging.logging import _resolve_log_file, get_configured_level

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def register_subcommands(subparsers):
    set_level = subparsers.add_parser(
        "set-level", help="Persist the level used by the chat server and CLI"
    )
    set_level.add_argument("level", choices=LEVELS, help="DEBUG also logs each system instruction")
    subparsers.add_parser("show-path", help="Print the deachat.log location")
    subparsers.add_parser("show-level", help="Print the level currently in effect")


def dispatch(args):
    def _set_level() -> None:
        name = args.level.upper()
        save_log_level(name)
        reset_logger()
        get_logger(level=getattr(logging, name))

    def _show_path() -> None:
        print(_resolve_log_file().resolve())

    def _show_level() -> None:
        print(get_configured_level())

    commands = {"set-level": _set_level, "show-path": _show_path, "show-level": _show_level}
    handler = commands.get(args.subcommand)
    if handler is None:
        message = f"No handler for logging subcommand: {args.subcommand}"
        get_logger(__name__).error(message)
        raise ValueError(message)
    handler()
