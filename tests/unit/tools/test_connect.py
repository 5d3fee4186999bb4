from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack
from types import SimpleNamespace

from deachat.tools import connect


async def _connect():
    async with AsyncExitStack() as stack:
        return await connect.connect_tool_registry(stack)


def test_disabled_tools_yield_unavailable_registry(monkeypatch):
    monkeypatch.setenv("DEACHAT_TOOLS_DISABLED", "1")

    registry = asyncio.run(_connect())

    assert not registry.connected
    assert registry.reason == "tool server disabled"


def test_missing_server_script_yields_unavailable_registry(monkeypatch, tmp_path):
    monkeypatch.delenv("DEACHAT_TOOLS_DISABLED", raising=False)
    monkeypatch.setenv("DEACHAT_TOOL_SERVER_SCRIPT", str(tmp_path / "nope" / "server.py"))

    def _fail_open(*args, **kwargs):
        raise AssertionError("server must not be spawned")

    monkeypatch.setattr(connect, "_open_session", _fail_open)

    registry = asyncio.run(_connect())

    assert not registry.connected
    assert "tool server script not found" in registry.reason
    assert registry.list_tools() == ()


def test_server_parameters_use_script_directory(monkeypatch, tmp_path):
    script = tmp_path / "string-mcp" / "server.py"
    script.parent.mkdir()
    script.write_text("", encoding="utf-8")
    monkeypatch.setenv("DEACHAT_TOOL_SERVER_SCRIPT", str(script))
    monkeypatch.setenv("DEACHAT_TOOL_SERVER_COMMAND", "py")
    monkeypatch.setenv("DEACHAT_TOOL_SERVER_ARGS", "--species 9606")

    params = connect.server_parameters()

    assert params.command == "py"
    assert params.args == [str(script.resolve()), "--species", "9606"]
    assert str(params.cwd) == str(script.parent.resolve())


def test_successful_connection_snapshots_tools(monkeypatch, tmp_path):
    script = tmp_path / "server.py"
    script.write_text("", encoding="utf-8")
    monkeypatch.delenv("DEACHAT_TOOLS_DISABLED", raising=False)
    monkeypatch.setenv("DEACHAT_TOOL_SERVER_SCRIPT", str(script))

    closed = []

    class _Session:
        async def list_tools(self):
            return SimpleNamespace(
                tools=[
                    SimpleNamespace(
                        name="get_interactions",
                        description="Protein interactions",
                        inputSchema={"type": "object", "properties": {"identifiers": {"type": "string"}}},
                    ),
                    SimpleNamespace(name="get_enrichment", description="Enrichment", inputSchema=None),
                ]
            )

    session = _Session()

    async def _fake_open(params, stack):
        stack.callback(closed.append, "closed")
        return session

    monkeypatch.setattr(connect, "_open_session", _fake_open)

    async def _run():
        async with AsyncExitStack() as stack:
            registry = await connect.connect_tool_registry(stack)
            assert closed == []
            return registry

    registry = asyncio.run(_run())

    assert registry.connected
    assert registry.session is session
    assert [tool.name for tool in registry.list_tools()] == ["get_interactions", "get_enrichment"]
    assert closed == ["closed"]


def test_failed_handshake_yields_unavailable_registry(monkeypatch, tmp_path):
    script = tmp_path / "server.py"
    script.write_text("", encoding="utf-8")
    monkeypatch.delenv("DEACHAT_TOOLS_DISABLED", raising=False)
    monkeypatch.setenv("DEACHAT_TOOL_SERVER_SCRIPT", str(script))

    async def _fake_open(params, stack):
        raise ConnectionError("server exited during initialize")

    monkeypatch.setattr(connect, "_open_session", _fake_open)

    registry = asyncio.run(_connect())

    assert not registry.connected
    assert registry.reason == "ConnectionError: server exited during initialize"


def test_duplicate_tool_names_keep_first_listing(monkeypatch, tmp_path):
    script = tmp_path / "server.py"
    script.write_text("", encoding="utf-8")
    monkeypatch.delenv("DEACHAT_TOOLS_DISABLED", raising=False)
    monkeypatch.setenv("DEACHAT_TOOL_SERVER_SCRIPT", str(script))

    class _Session:
        async def list_tools(self):
            return SimpleNamespace(
                tools=[
                    SimpleNamespace(name="get_network", description="first", inputSchema=None),
                    SimpleNamespace(name="get_network", description="second", inputSchema=None),
                    SimpleNamespace(name="get_enrichment", description="Enrichment", inputSchema=None),
                ]
            )

    async def _fake_open(params, stack):
        return _Session()

    monkeypatch.setattr(connect, "_open_session", _fake_open)

    registry = asyncio.run(_connect())

    assert registry.connected
    assert [tool.name for tool in registry.list_tools()] == ["get_network", "get_enrichment"]
    assert registry.get("get_network").description == "first"
