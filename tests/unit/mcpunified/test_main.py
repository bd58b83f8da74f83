# -*- coding: utf-8 -*-
"""Location: ./tests/unit/mcpunified/test_main.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Unit tests for the HTTP front door: JSON-RPC over POST and WebSocket, health, metrics,
CORS and admin routes.
"""

# Standard
import asyncio
from datetime import datetime
import json

# Third-Party
from fastapi.testclient import TestClient
import pytest
from starlette.websockets import WebSocketDisconnect

# First-Party
from mcpunified.main import create_app


class EchoBridge:
    def get_tools(self):
        return [{"name": "recall"}]

    def execute_tool(self, name, arguments):
        return {"content": [{"type": "text", "text": "remembered"}]}


@pytest.fixture
def gateway(make_gateway):
    gw = make_gateway({"a": {"tools": ["echo", "add"]}, "b": {"tools": ["echo", "search"]}})
    asyncio.run(gw.initialize(start_health_loop=False))
    gw.set_listener("primary", True)
    gw.set_listener("fallback", True)
    return gw


@pytest.fixture
def client(gateway):
    return TestClient(create_app(gateway))


def rpc(client, method, params=None, request_id=1, **kwargs):
    body = {"jsonrpc": "2.0", "method": method, "id": request_id}
    if params is not None:
        body["params"] = params
    return client.post("/mcp", json=body, **kwargs)


def test_initialize(client):
    response = rpc(client, "initialize", {"protocolVersion": "2024-11-05", "capabilities": {}})
    assert response.status_code == 200
    result = response.json()["result"]
    assert result["serverInfo"]["name"] == "MCP_Unified_Gateway"
    assert "tools" in result["capabilities"]


def test_ping(client):
    assert rpc(client, "ping", request_id="p1").json() == {"jsonrpc": "2.0", "id": "p1", "result": {}}


def test_tools_list_is_merged_without_duplicates(client):
    body = rpc(client, "tools/list").json()
    tools = body["result"]["tools"]
    names = [t["name"] for t in tools]
    assert names == ["echo", "add", "search"]
    assert len(names) == len(set(names))
    assert tools[0]["_source"] == "a"
    assert body["result"]["_meta"]["totalTools"] == 3
    assert body["result"]["_meta"]["sources"] == {"a": "healthy", "b": "healthy"}


def test_tools_call_routes_to_first_source(client, gateway):
    body = rpc(client, "tools/call", {"name": "echo", "arguments": {"text": "hi"}}, request_id=9).json()
    assert body["id"] == 9
    assert body["result"]["content"][0]["text"] == "a:echo"
    assert gateway.adapters["a"].calls == [("echo", {"text": "hi"})]


def test_unknown_tool_is_error_envelope_with_200(client):
    response = rpc(client, "tools/call", {"name": "ping", "arguments": {}}, request_id=5)
    assert response.status_code == 200
    body = response.json()
    assert body["id"] == 5
    assert body["error"]["code"] == -32001
    assert "not found" in body["error"]["message"].lower()


def test_malformed_json_is_parse_error(client):
    response = client.post("/mcp", content=b"{not json", headers={"content-type": "application/json"})
    assert response.status_code == 200
    body = response.json()
    assert body["id"] is None
    assert body["error"]["code"] == -32700


def test_bad_envelope_is_parse_error(client):
    body = client.post("/mcp", json={"jsonrpc": "1.0", "method": "ping", "id": 3}).json()
    assert body["error"]["code"] == -32700


def test_unknown_method(client):
    body = rpc(client, "resources/list").json()
    assert body["error"]["code"] == -32601


def test_invalid_params(client):
    body = rpc(client, "tools/call", {"arguments": {}}).json()
    assert body["error"]["code"] == -32602


def test_notification_gets_204(client, gateway):
    response = client.post("/mcp", json={"jsonrpc": "2.0", "method": "notifications/initialized"})
    assert response.status_code == 204
    assert response.content == b""


def test_trailing_slash_route(client):
    assert client.post("/mcp/", json={"jsonrpc": "2.0", "method": "ping", "id": 1}).json()["result"] == {}


def test_unexpected_exception_is_internal_error(client, gateway, monkeypatch):
    async def boom(name, arguments):
        raise RuntimeError("secret detail")

    monkeypatch.setattr(gateway.router, "call_tool", boom)
    body = rpc(client, "tools/call", {"name": "echo"}).json()
    assert body["error"]["code"] == -32603
    assert "secret" not in json.dumps(body)


def test_tool_result_with_datetime_is_encoded(client, gateway, monkeypatch):
    async def dated(name, arguments):
        return {"when": datetime(2025, 3, 1, 12, 30), "tags": {"x"}}

    monkeypatch.setattr(gateway.router, "call_tool", dated)
    response = rpc(client, "tools/call", {"name": "echo"}, request_id=5)
    assert response.status_code == 200
    assert response.json() == {"jsonrpc": "2.0", "id": 5, "result": {"when": "2025-03-01T12:30:00", "tags": ["x"]}}


@pytest.mark.parametrize("result", [{"score": float("nan")}, {"handle": object()}])
def test_unserializable_tool_result_is_internal_error(client, gateway, monkeypatch, result):
    async def odd(name, arguments):
        return result

    monkeypatch.setattr(gateway.router, "call_tool", odd)
    response = rpc(client, "tools/call", {"name": "echo"}, request_id=6)
    assert response.status_code == 200
    assert response.json()["id"] == 6
    assert response.json()["error"]["code"] == -32603


def test_websocket_survives_unserializable_result(client, gateway, monkeypatch):
    async def odd(name, arguments):
        return {"score": float("inf")}

    monkeypatch.setattr(gateway.router, "call_tool", odd)
    with client.websocket_connect("/ws") as ws:
        ws.send_text(json.dumps({"jsonrpc": "2.0", "method": "tools/call", "params": {"name": "echo"}, "id": 1}))
        assert ws.receive_json()["error"]["code"] == -32603
        ws.send_text(json.dumps({"jsonrpc": "2.0", "method": "ping", "id": 2}))
        assert ws.receive_json() == {"jsonrpc": "2.0", "id": 2, "result": {}}


def test_options_preflight_on_any_path(client):
    response = client.options("/anything/at/all")
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"
    assert "POST" in response.headers["access-control-allow-methods"]
    assert "X-API-Key" in response.headers["access-control-allow-headers"]


def test_cors_headers_on_cross_origin_responses(client):
    response = client.post("/mcp", json={"jsonrpc": "2.0", "method": "ping", "id": 1}, headers={"Origin": "http://dashboard.example"})
    assert response.headers["access-control-allow-origin"] == "*"
    assert client.get("/health", headers={"Origin": "http://dashboard.example"}).headers["access-control-allow-origin"] == "*"


def test_browser_preflight_gets_exact_headers(client):
    response = client.options("/mcp", headers={"Origin": "http://dashboard.example", "Access-Control-Request-Method": "POST"})
    assert response.status_code == 200
    assert response.headers["access-control-allow-methods"] == "GET, POST, OPTIONS"
    assert response.headers["access-control-allow-headers"] == "Content-Type, Authorization, X-API-Key"


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["listeners"] == {"primary": True, "fallback": True}
    assert body["activeSources"] == 2
    assert body["totalTools"] == 3
    assert [s["id"] for s in body["sources"]] == ["a", "b"]


def test_health_is_200_when_degraded(client, gateway):
    gateway.set_listener("primary", False)
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "degraded"


def test_health_is_503_when_every_listener_is_down(client, gateway):
    gateway.set_listener("primary", False)
    gateway.set_listener("fallback", False)
    response = client.get("/health")
    assert response.status_code == 503
    assert response.json()["status"] == "unhealthy"


def test_metrics(client):
    rpc(client, "tools/call", {"name": "echo"})
    rpc(client, "tools/call", {"name": "nope"})
    body = client.get("/metrics").json()
    assert body["requests"]["total"] == 2
    assert body["requests"]["errors"] == 1
    assert body["requests"]["byMethod"] == {"tools/call": 2}
    assert body["toolCalls"]["bySource"] == {"a": 1}
    assert body["sources"] == {"a": {"state": "healthy", "tools": 2}, "b": {"state": "healthy", "tools": 2}}
    assert body["availability"] == 100.0


def test_root_banner(client):
    body = client.get("/").json()
    assert body["name"] == "MCP_Unified_Gateway"
    assert body["sources"] == 2
    assert body["endpoints"]["mcp"] == "POST /mcp"


def test_admin_requires_key(client):
    assert client.get("/admin/sources").status_code == 401
    assert client.get("/admin/sources", headers={"X-API-Key": "wrong"}).status_code == 401
    assert client.post("/admin/refresh").status_code == 401


def test_admin_list_sources(client):
    response = client.get("/admin/sources", headers={"X-API-Key": "admin-key"})
    assert response.status_code == 200
    sources = response.json()["sources"]
    assert [s["id"] for s in sources] == ["a", "b"]
    assert sources[0]["health"]["state"] == "healthy"
    assert sources[0]["tools"] == 2


def test_admin_add_source(client, gateway):
    gateway.bridges["echo-bridge"] = EchoBridge()
    payload = {"id": "mem", "displayName": "Memory", "transport": {"kind": "bridge-internal", "bridge": "echo-bridge"}}

    response = client.post("/admin/sources", json=payload, headers={"Authorization": "Bearer admin-key"})
    assert response.status_code == 201
    body = response.json()
    assert body["source"]["id"] == "mem"
    assert body["health"]["state"] == "healthy"
    assert body["tools"] == 1
    assert "recall" in [t["name"] for t in rpc(client, "tools/list").json()["result"]["tools"]]

    duplicate = client.post("/admin/sources", json=payload, headers={"X-API-Key": "admin-key"})
    assert duplicate.status_code == 409


def test_admin_add_invalid_source(client):
    response = client.post("/admin/sources", json={"id": "x", "transport": {"kind": "smoke"}}, headers={"X-API-Key": "admin-key"})
    assert response.status_code == 422


def test_admin_refresh(client, gateway):
    gateway.adapters["b"].healthy = False
    response = client.post("/admin/refresh", headers={"X-API-Key": "admin-key"})
    assert response.status_code == 200
    body = response.json()
    assert body["totalTools"] == 3
    assert {s["id"]: s["state"] for s in body["sources"]} == {"a": "healthy", "b": "degraded"}


def test_auth_required_guards_mcp(make_gateway, settings):
    gw = make_gateway({"a": {"tools": ["echo"]}}, gateway_settings=settings.model_copy(update={"auth_required": True}))
    asyncio.run(gw.initialize(start_health_loop=False))
    client = TestClient(create_app(gw))

    assert rpc(client, "ping").status_code == 401
    assert rpc(client, "ping", headers={"X-API-Key": "admin-key"}).json()["result"] == {}

    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws") as ws:
            ws.receive_text()


def test_websocket_round_trip(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_text(json.dumps({"jsonrpc": "2.0", "method": "tools/call", "params": {"name": "search"}, "id": 1}))
        assert ws.receive_json()["result"]["content"][0]["text"] == "b:search"

        ws.send_text(json.dumps({"jsonrpc": "2.0", "method": "notifications/initialized"}))
        ws.send_text("garbage")
        assert ws.receive_json()["error"]["code"] == -32700
