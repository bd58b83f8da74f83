# -*- coding: utf-8 -*-
"""Location: ./tests/unit/mcpunified/test_gateway.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Unit tests for the gateway instance lifecycle and status.
"""

# Third-Party
import pytest

# First-Party
from mcpunified.adapters import BridgeSourceAdapter, HttpSourceAdapter, WebSocketSourceAdapter
from mcpunified.errors import DuplicateSourceIdError
from mcpunified.gateway import GatewayInstance
from mcpunified.models import HealthState, SourceDescriptor
from mcpunified.registry import SourceRegistry


@pytest.mark.asyncio
async def test_initialize_probes_and_indexes(make_gateway):
    gw = make_gateway({"a": {"tools": ["echo"]}, "b": {"tools": ["sum"], "healthy": False}})
    await gw.initialize(start_health_loop=False)
    try:
        assert gw.initialized
        assert gw.started_at is not None
        assert all(adapter.connected for adapter in gw.adapters.values())
        assert gw.source_states() == {"a": "healthy", "b": "unreachable"}
        assert [t.name for t in gw.router.list_tools()] == ["echo"]
        assert [s["id"] for s in gw.sources_summary()] == ["a", "b"]
    finally:
        await gw.shutdown()


@pytest.mark.asyncio
async def test_shutdown_closes_adapters(make_gateway):
    gw = make_gateway({"a": {"tools": ["echo"]}, "b": {}})
    await gw.initialize()
    await gw.shutdown()
    assert not gw.initialized
    assert all(adapter.closed for adapter in gw.adapters.values())
    assert gw.health._task is None


@pytest.mark.asyncio
async def test_add_source_at_runtime(make_gateway, make_source):
    gw = make_gateway({"a": {"tools": ["echo"]}})
    await gw.initialize(start_health_loop=False)

    descriptor, adapter = make_source("c", tools=["echo", "recall"])
    health = await gw.add_source(descriptor, adapter)
    assert health.state == HealthState.HEALTHY
    assert adapter.connected
    assert [(t.name, t.source_id) for t in gw.router.list_tools()] == [("echo", "a"), ("recall", "c")]

    with pytest.raises(DuplicateSourceIdError):
        await gw.add_source(*make_source("c"))


@pytest.mark.asyncio
async def test_refresh_picks_up_recovered_sources(make_gateway):
    gw = make_gateway({"a": {"tools": ["echo"], "healthy": False}})
    await gw.initialize(start_health_loop=False)
    assert gw.router.list_tools() == ()

    gw.adapters["a"].healthy = True
    await gw.refresh()
    assert [t.name for t in gw.router.list_tools()] == ["echo"]


@pytest.mark.asyncio
async def test_status(make_gateway):
    gw = make_gateway({"a": {"tools": ["echo"]}, "b": {}})
    await gw.initialize(start_health_loop=False)
    gw.set_listener("primary", True)
    gw.set_listener("fallback", True)
    assert gw.status() == "healthy"

    gw.adapters["b"].healthy = False
    await gw.health.probe_source("b")
    assert gw.status() == "degraded"

    gw.adapters["a"].healthy = False
    for _ in range(3):
        await gw.health.probe_all()
    assert gw.status() == "unhealthy"


def test_listener_state(make_gateway):
    gw = make_gateway({})
    assert not gw.is_failed
    gw.set_listener("primary", False)
    gw.set_listener("fallback", True)
    assert not gw.is_failed
    assert gw.status() == "degraded"
    gw.set_listener("fallback", False)
    assert gw.is_failed
    assert gw.status() == "unhealthy"


def test_adapters_built_from_descriptors(settings):
    registry = SourceRegistry(
        [
            SourceDescriptor(id="h", transport={"kind": "http", "url": "http://localhost:1"}),
            SourceDescriptor(id="w", transport={"kind": "websocket", "url": "ws://localhost:1"}),
            SourceDescriptor(id="m", transport={"kind": "bridge-internal", "bridge": "memory"}),
        ]
    )
    gw = GatewayInstance(settings, registry=registry, bridges={"memory": object()})
    assert isinstance(gw.adapters["h"], HttpSourceAdapter)
    assert isinstance(gw.adapters["w"], WebSocketSourceAdapter)
    assert isinstance(gw.adapters["m"], BridgeSourceAdapter)
