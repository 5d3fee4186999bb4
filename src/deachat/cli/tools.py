# deachat/cli/tools.py
import asyncio
from contextlib import AsyncExitStack

from rich.console import Console
from rich.table import Table

from deachat.logging import get_logger
from deachat.tools.connect import connect_tool_registry
from deachat.tools.registry import ToolRegistry


def register_subcommands(subparsers):
    subparsers.add_parser("list", help="Connect to the tool server and list its tools")


async def _snapshot() -> ToolRegistry:
    async with AsyncExitStack() as stack:
        return await connect_tool_registry(stack)


def _render_tools(registry: ToolRegistry, console: Console | None = None) -> None:
    """Pretty-print the tool snapshot using ``rich``."""

    if console is None:
        console = Console()

    if not registry.connected:
        console.print(f"[yellow]Tool server not connected:[/yellow] {registry.reason}")
        return

    table = Table(title="Tool server", show_lines=True)
    table.add_column("Tool", style="bold cyan")
    table.add_column("Description")
    table.add_column("Parameters", style="magenta")

    tools = registry.list_tools()
    if not tools:
        table.add_row("[dim]No tools advertised[/dim]", "", "")
    for tool in tools:
        properties = tool.parameter_schema.get("properties") or {}
        table.add_row(tool.name, tool.description, ", ".join(properties))

    console.print(table)


def dispatch(args):
    logger = get_logger(__name__)

    if args.subcommand == "list":
        _render_tools(asyncio.run(_snapshot()))
    else:
        logger.error("No handler for tools subcommand: %s", args.subcommand)
