# -*- coding: utf-8 -*-
"""Location: ./tests/unit/mcpunified/adapters/test_bridge_adapter.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Unit tests for in-process bridge sources.
"""

# Standard
import asyncio

# Third-Party
import pytest

# First-Party
from mcpunified.adapters import build_adapter
from mcpunified.adapters.bridge_adapter import BridgeSourceAdapter, parse_bridge_path, resolve_bridge
from mcpunified.errors import SourceUnavailableError, ToolNotFoundError, UpstreamError
from mcpunified.models import SourceDescriptor


class MemoryBridge:
    """Synchronous bridge."""

    def __init__(self):
        self.connected = True
        self.closed = False

    def get_tools(self):
        return [
            {"name": "create_memory", "description": "Store", "inputSchema": {"type": "object", "properties": {"text": {"type": "string"}}}},
            {"name": "fail", "description": "Always fails"},
        ]

    def execute_tool(self, name, arguments):
        if name == "create_memory":
            return {"content": [{"type": "text", "text": arguments["text"]}]}
        if name == "fail":
            raise RuntimeError("database offline")
        raise KeyError(name)

    def get_status(self):
        return {"connected": self.connected}

    def close(self):
        self.closed = True


class AsyncBridge:
    """Asynchronous bridge without get_status."""

    async def get_tools(self):
        return [{"name": "slow"}]

    async def execute_tool(self, name, arguments):
        await asyncio.sleep(arguments.get("delay", 0))
        return {"ok": True}


def _descriptor(bridge="memory"):
    return SourceDescriptor(id="mem", transport={"kind": "bridge-internal", "bridge": bridge})


@pytest.mark.asyncio
async def test_sync_bridge_list_and_call(settings):
    bridge = MemoryBridge()
    adapter = build_adapter(_descriptor(), settings, {"memory": bridge})
    assert isinstance(adapter, BridgeSourceAdapter)
    await adapter.connect()

    tools = await adapter.list_tools()
    assert [t.name for t in tools] == ["create_memory", "fail"]
    assert tools[0].input_schema["properties"]["text"] == {"type": "string"}
    assert await adapter.call_tool("create_memory", {"text": "hello"}) == {"content": [{"type": "text", "text": "hello"}]}


@pytest.mark.asyncio
async def test_bridge_exception_is_upstream_error(settings):
    adapter = BridgeSourceAdapter(_descriptor(), settings, {"memory": MemoryBridge()})
    with pytest.raises(UpstreamError) as exc:
        await adapter.call_tool("fail", {})
    assert exc.value.data == {"type": "RuntimeError", "message": "database offline"}


@pytest.mark.asyncio
async def test_unknown_bridge_tool_is_tool_not_found(settings):
    adapter = BridgeSourceAdapter(_descriptor(), settings, {"memory": MemoryBridge()})
    with pytest.raises(ToolNotFoundError):
        await adapter.call_tool("ghost", {})


@pytest.mark.asyncio
async def test_probe_follows_bridge_status(settings):
    bridge = MemoryBridge()
    adapter = BridgeSourceAdapter(_descriptor(), settings, {"memory": bridge})
    assert (await adapter.probe_health()).ok
    bridge.connected = False
    result = await adapter.probe_health()
    assert result.ok is False


@pytest.mark.asyncio
async def test_async_bridge_and_timeout(settings):
    adapter = BridgeSourceAdapter(_descriptor("async"), settings.model_copy(update={"tool_timeout": 0.05}), {"async": AsyncBridge()})
    assert (await adapter.probe_health()).ok
    assert [t.name for t in await adapter.list_tools()] == ["slow"]
    assert await adapter.call_tool("slow", {}) == {"ok": True}
    with pytest.raises(SourceUnavailableError):
        await adapter.call_tool("slow", {"delay": 1})


@pytest.mark.asyncio
async def test_missing_bridge_reported_by_probe(settings):
    adapter = BridgeSourceAdapter(_descriptor("nowhere"), settings, {})
    await adapter.connect()
    result = await adapter.probe_health()
    assert result.ok is False
    assert "nowhere" in result.error


@pytest.mark.asyncio
async def test_close_calls_bridge_close(settings):
    bridge = MemoryBridge()
    adapter = BridgeSourceAdapter(_descriptor(), settings, {"memory": bridge})
    await adapter.connect()
    await adapter.close()
    assert bridge.closed


def test_parse_bridge_path():
    assert parse_bridge_path("a.b:make") == ("a.b", "make")
    assert parse_bridge_path("a.b.make") == ("a.b", "make")


def test_resolve_bridge_by_import_path():
    bridge = resolve_bridge("collections:Counter")
    assert type(bridge).__name__ == "Counter"
    with pytest.raises(SourceUnavailableError):
        resolve_bridge("no_such_module_xyz:Thing")
