"""Connect to the tool server (an MCP server spoken to over stdio).

Resolution of the server command:
  1) ``DEACHAT_TOOLS_DISABLED`` truthy: no connection attempt
  2) ``DEACHAT_TOOL_SERVER_COMMAND`` (default: the running interpreter)
  3) ``DEACHAT_TOOL_SERVER_SCRIPT`` (default ``string-mcp/server.py``), run
     with its own directory as working directory
  4) ``DEACHAT_TOOL_SERVER_ARGS`` appended after the script
"""

from __future__ import annotations

import asyncio
import os
import shlex
import sys
from contextlib import AsyncExitStack
from pathlib import Path

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client

from deachat.assistant.errors import RegistryUnavailable
from deachat.assistant.models import ToolDescriptor
from deachat.logging import get_logger
from deachat.tools.registry import ToolRegistry


logger = get_logger(__name__)

_DEFAULT_SERVER_SCRIPT = Path("string-mcp") / "server.py"


def _is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _startup_timeout_seconds() -> float:
    raw = (os.getenv("DEACHAT_TOOL_SERVER_STARTUP_TIMEOUT_SECONDS") or "").strip()
    if not raw:
        return 30.0
    try:
        return max(1.0, float(raw))
    except ValueError:
        return 30.0


def tools_disabled() -> bool:
    return _is_truthy(os.getenv("DEACHAT_TOOLS_DISABLED"))


def server_parameters() -> StdioServerParameters:
    """Build the stdio parameters for the configured tool server.

    Raises
    ------
    RegistryUnavailable
        If the server script does not exist.
    """

    command = (os.getenv("DEACHAT_TOOL_SERVER_COMMAND") or "").strip() or sys.executable
    raw_script = (os.getenv("DEACHAT_TOOL_SERVER_SCRIPT") or "").strip()
    script = Path(raw_script).expanduser() if raw_script else _DEFAULT_SERVER_SCRIPT
    script = script.resolve()
    if not script.is_file():
        raise RegistryUnavailable(f"tool server script not found: {script}")

    extra_args = shlex.split(os.getenv("DEACHAT_TOOL_SERVER_ARGS") or "")
    return StdioServerParameters(
        command=command,
        args=[str(script), *extra_args],
        cwd=str(script.parent),
    )


def _unique_tools(descriptors) -> list[ToolDescriptor]:
    """Keep the first descriptor for each name; the model needs unique names."""

    seen: dict[str, ToolDescriptor] = {}
    for descriptor in descriptors:
        if descriptor.name in seen:
            logger.warning("Tool server listed %s more than once; keeping the first entry", descriptor.name)
            continue
        seen[descriptor.name] = descriptor
    return list(seen.values())


async def _open_session(params: StdioServerParameters, stack: AsyncExitStack) -> ClientSession:
    read, write = await stack.enter_async_context(stdio_client(params))
    session = await stack.enter_async_context(ClientSession(read, write))
    await asyncio.wait_for(session.initialize(), timeout=_startup_timeout_seconds())
    return session


async def connect_tool_registry(stack: AsyncExitStack) -> ToolRegistry:
    """Start the tool server and snapshot its tools.

    The session is tied to ``stack`` and closes with it. Any failure leaves
    the process in tool-free mode: it is logged and the unavailable registry
    is returned.
    """

    if tools_disabled():
        logger.info("Tool server disabled by DEACHAT_TOOLS_DISABLED; chat runs without tools")
        return ToolRegistry.unavailable("tool server disabled")

    local = AsyncExitStack()
    try:
        params = server_parameters()
        logger.info("Connecting to tool server: %s %s", params.command, " ".join(params.args))
        session = await _open_session(params, local)
        listing = await session.list_tools()
        tools = _unique_tools(ToolDescriptor.from_mcp(tool) for tool in listing.tools or [])
        registry = ToolRegistry(tools, session=session)
    except Exception as exc:
        reason = f"{type(exc).__name__}: {exc}"
        logger.warning("Tool server unavailable (%s); chat runs without tools", reason)
        try:
            await local.aclose()
        except Exception as close_exc:
            logger.debug("Ignoring error while closing failed tool server: %r", close_exc)
        return ToolRegistry.unavailable(reason)

    stack.push_async_callback(local.aclose)
    logger.info("Connected to tool server with %d tools available", len(tools))
    if tools:
        logger.info("Available tools: %s", ", ".join(tool.name for tool in tools))
    return registry


__all__ = ["connect_tool_registry", "server_parameters", "tools_disabled"]
