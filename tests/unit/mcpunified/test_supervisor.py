# -*- coding: utf-8 -*-
"""Location: ./tests/unit/mcpunified/test_supervisor.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Unit tests for the primary/fallback listener supervisor, using real sockets on localhost.
"""

# Standard
import asyncio
import socket

# Third-Party
import httpx
import pytest

# First-Party
from mcpunified.errors import GatewayStartupError
from mcpunified.supervisor import bind_socket, ResilienceSupervisor


def _occupy(port):
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", port))
    sock.listen(1)
    return sock


async def _wait_until(condition, timeout=10.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        assert loop.time() < deadline, "condition not reached"
        await asyncio.sleep(0.02)


@pytest.fixture
def listener_settings(settings, free_port):
    return settings.model_copy(
        update={
            "host": "127.0.0.1",
            "primary_port": free_port(),
            "fallback_port": free_port(),
            "shutdown_timeout": 1.0,
            "log_level": "WARNING",
        }
    )


@pytest.mark.asyncio
async def test_fallback_serves_when_primary_port_taken(make_gateway, listener_settings):
    blocker = _occupy(listener_settings.primary_port)
    try:
        gw = make_gateway({"a": {"tools": ["echo"]}}, gateway_settings=listener_settings)
        supervisor = ResilienceSupervisor(gw)
        run = asyncio.create_task(supervisor.run(install_signals=False))
        await asyncio.wait_for(supervisor.ready.wait(), timeout=10)

        async with httpx.AsyncClient(base_url=f"http://127.0.0.1:{listener_settings.fallback_port}", trust_env=False) as client:
            health = await client.get("/health")
            listed = await client.post("/mcp", json={"jsonrpc": "2.0", "id": 1, "method": "tools/list"})

        assert health.status_code == 200
        assert health.json()["listeners"] == {"primary": False, "fallback": True}
        assert health.json()["status"] == "degraded"
        assert [t["name"] for t in listed.json()["result"]["tools"]] == ["echo"]

        supervisor.request_shutdown()
        assert await asyncio.wait_for(run, timeout=10) == 0
        assert gw.adapters["a"].closed
    finally:
        blocker.close()


@pytest.mark.asyncio
async def test_both_listeners_share_one_gateway(make_gateway, listener_settings):
    gw = make_gateway({"a": {"tools": ["echo"]}}, gateway_settings=listener_settings)
    supervisor = ResilienceSupervisor(gw)
    run = asyncio.create_task(supervisor.run(install_signals=False))
    await asyncio.wait_for(supervisor.ready.wait(), timeout=10)

    async with httpx.AsyncClient(trust_env=False) as client:
        await client.post(f"http://127.0.0.1:{listener_settings.primary_port}/mcp", json={"jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": {"name": "echo"}})
        metrics = (await client.get(f"http://127.0.0.1:{listener_settings.fallback_port}/metrics")).json()

    assert metrics["toolCalls"]["total"] == 1
    assert gw.listeners == {"primary": True, "fallback": True}

    supervisor.request_shutdown()
    assert await asyncio.wait_for(run, timeout=10) == 0
    assert gw.listeners == {"primary": False, "fallback": False}


@pytest.mark.asyncio
async def test_no_bindable_port_is_startup_error(make_gateway, listener_settings):
    blockers = [_occupy(listener_settings.primary_port), _occupy(listener_settings.fallback_port)]
    try:
        gw = make_gateway({"a": {}}, gateway_settings=listener_settings)
        with pytest.raises(GatewayStartupError):
            await ResilienceSupervisor(gw).run(install_signals=False)
        assert not gw.initialized
    finally:
        for sock in blockers:
            sock.close()


@pytest.mark.asyncio
async def test_losing_every_listener_fails_the_gateway(make_gateway, listener_settings):
    cfg = listener_settings.model_copy(update={"enable_fallback": False, "listener_restart_attempts": 0})
    gw = make_gateway({"a": {}}, gateway_settings=cfg)
    supervisor = ResilienceSupervisor(gw)
    run = asyncio.create_task(supervisor.run(install_signals=False))
    await asyncio.wait_for(supervisor.ready.wait(), timeout=10)

    supervisor.servers["primary"].should_exit = True
    assert await asyncio.wait_for(run, timeout=10) == 1
    assert gw.is_failed


@pytest.mark.asyncio
async def test_crashed_listener_is_restarted(make_gateway, listener_settings):
    cfg = listener_settings.model_copy(update={"listener_restart_delay": 0.05})
    gw = make_gateway({"a": {"tools": ["echo"]}}, gateway_settings=cfg)
    supervisor = ResilienceSupervisor(gw)
    run = asyncio.create_task(supervisor.run(install_signals=False))
    await asyncio.wait_for(supervisor.ready.wait(), timeout=10)

    crashed = supervisor.servers["primary"]
    crashed.should_exit = True
    await _wait_until(lambda: supervisor.servers["primary"] is not crashed and supervisor.servers["primary"].started)

    async with httpx.AsyncClient(trust_env=False) as client:
        health = await client.get(f"http://127.0.0.1:{cfg.primary_port}/health")
    assert health.status_code == 200
    assert health.json()["listeners"] == {"primary": True, "fallback": True}
    assert health.json()["status"] == "healthy"

    supervisor.request_shutdown()
    assert await asyncio.wait_for(run, timeout=10) == 0


@pytest.mark.asyncio
async def test_listener_given_up_after_restart_budget(make_gateway, listener_settings):
    cfg = listener_settings.model_copy(update={"enable_fallback": False, "listener_restart_attempts": 1, "listener_restart_delay": 0.05})
    gw = make_gateway({"a": {}}, gateway_settings=cfg)
    supervisor = ResilienceSupervisor(gw)
    run = asyncio.create_task(supervisor.run(install_signals=False))
    await asyncio.wait_for(supervisor.ready.wait(), timeout=10)

    first = supervisor.servers["primary"]
    first.should_exit = True
    await _wait_until(lambda: supervisor.servers["primary"] is not first and supervisor.servers["primary"].started)
    supervisor.servers["primary"].should_exit = True

    assert await asyncio.wait_for(run, timeout=10) == 1
    assert gw.is_failed


@pytest.mark.asyncio
async def test_shutdown_drains_in_flight_tool_call(make_gateway, listener_settings):
    cfg = listener_settings.model_copy(update={"enable_fallback": False, "shutdown_timeout": 3.0})
    gw = make_gateway({"a": {"tools": ["slow"]}}, gateway_settings=cfg)
    adapter = gw.adapters["a"]
    adapter.call_delay = 0.5
    supervisor = ResilienceSupervisor(gw)
    run = asyncio.create_task(supervisor.run(install_signals=False))
    await asyncio.wait_for(supervisor.ready.wait(), timeout=10)

    async with httpx.AsyncClient(base_url=f"http://127.0.0.1:{cfg.primary_port}", trust_env=False, timeout=10) as client:
        call = asyncio.create_task(client.post("/mcp", json={"jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": {"name": "slow"}}))
        await _wait_until(lambda: adapter.calls)
        supervisor.request_shutdown()
        response = await call

    assert response.status_code == 200
    assert response.json()["result"]["content"][0]["text"] == "a:slow"
    assert await asyncio.wait_for(run, timeout=10) == 0
    assert adapter.events == ["call:slow", "close"]


def test_bind_socket_reports_busy_port(free_port):
    port = free_port()
    blocker = _occupy(port)
    try:
        with pytest.raises(OSError):
            bind_socket("127.0.0.1", port)
    finally:
        blocker.close()
