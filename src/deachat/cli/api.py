# deachat/cli/api.py
import os

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from deachat.assistant.errors import RegistryUnavailable
from deachat.assistant.service import gemini_model, gemini_api_key
from deachat.logging import get_logger
from deachat.tools.connect import server_parameters, tools_disabled


def register_subcommands(subparsers):
    subparsers.add_parser(
        "status", help="Show how the chat server would start (model, key, tool server)"
    )
    starter_parser = subparsers.add_parser("start", help="Serve /api/chat, /api/health and /api/tools")
    starter_parser.add_argument("--host", default="localhost", help="Interface to bind")
    starter_parser.add_argument("--port", type=int, default=3000, help="Port the browser client talks to")


def _tool_server_line() -> str:
    if tools_disabled():
        return "disabled (DEACHAT_TOOLS_DISABLED)"
    try:
        params = server_parameters()
    except RegistryUnavailable as exc:
        return f"[yellow]{escape(str(exc))}[/yellow]"
    return " ".join([params.command, *params.args])


def _status_table() -> Table:
    table = Table(title="deachat chat server", show_header=False)
    table.add_column("Setting", style="bold cyan")
    table.add_column("Value")
    table.add_row("Model", gemini_model())
    table.add_row("GEMINI_API_KEY", "set" if gemini_api_key() else "[yellow]not set (clients must send apiKey)[/yellow]")
    table.add_row("Tool server", _tool_server_line())
    table.add_row("Static client", os.getenv("DEACHAT_STATIC_DIR") or "[dim]not served[/dim]")
    return table


def dispatch(args, console=None):
    """Run an ``api`` subcommand.

    ``status`` only inspects configuration; the tool server is not spawned.
    Unknown subcommands raise ``ValueError``.
    """
    logger = get_logger(__name__)

    def _status() -> None:
        (console or Console()).print(_status_table())

    def _start() -> None:
        from deachat.api.main import app
        import uvicorn

        logger.info("Starting chat server at http://%s:%s", args.host, args.port)
        uvicorn.run(app, host=args.host, port=args.port)

    commands = {"status": _status, "start": _start}
    try:
        handler = commands[args.subcommand]
    except KeyError as exc:
        message = f"No handler for API subcommand: {args.subcommand}"
        logger.error(message)
        raise ValueError(message) from exc

    handler()
