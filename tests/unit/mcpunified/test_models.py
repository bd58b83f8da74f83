# -*- coding: utf-8 -*-
"""Location: ./tests/unit/mcpunified/test_models.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Unit tests for source, health and tool models.
"""

# Third-Party
from pydantic import ValidationError
import pytest

# First-Party
from mcpunified.models import (
    BridgeTransportConfig,
    HealthState,
    HttpTransportConfig,
    SourceDescriptor,
    SourceHealth,
    StdioTransportConfig,
    ToolDescriptor,
    TransportKind,
    WebSocketTransportConfig,
)


@pytest.mark.parametrize(
    "transport, cls, kind",
    [
        ({"kind": "stdio", "command": "node server.js"}, StdioTransportConfig, TransportKind.STDIO),
        ({"kind": "http", "url": "http://localhost:3001"}, HttpTransportConfig, TransportKind.HTTP),
        ({"kind": "websocket", "url": "ws://localhost:3003/mcp"}, WebSocketTransportConfig, TransportKind.WEBSOCKET),
        ({"kind": "bridge-internal", "bridge": "memory"}, BridgeTransportConfig, TransportKind.BRIDGE),
    ],
)
def test_transport_variant_selected_by_kind(transport, cls, kind):
    d = SourceDescriptor(id="s", transport=transport)
    assert isinstance(d.transport, cls)
    assert d.transport_kind == kind


def test_unknown_transport_kind_rejected():
    with pytest.raises(ValidationError):
        SourceDescriptor(id="s", transport={"kind": "carrier-pigeon", "url": "x"})


def test_variant_required_fields_enforced():
    with pytest.raises(ValidationError):
        SourceDescriptor(id="s", transport={"kind": "http"})
    with pytest.raises(ValidationError):
        SourceDescriptor(id="s", transport={"kind": "stdio", "command": ""})


def test_descriptor_is_frozen():
    d = SourceDescriptor(id="s", transport={"kind": "bridge-internal", "bridge": "b"})
    with pytest.raises(ValidationError):
        d.id = "other"


def test_descriptor_aliases_and_defaults():
    d = SourceDescriptor.model_validate(
        {
            "id": "ctx",
            "displayName": "Context",
            "toolCountHint": "17+",
            "categories": ["docs", "reference"],
            "transport": {"kind": "http", "url": "http://h:3007/", "responseFormat": "direct", "endpoint": "/tools"},
        }
    )
    assert d.display_name == "Context"
    assert d.tool_count_hint == "17+"
    assert d.categories == ("docs", "reference")
    assert d.transport.response_format == "direct"
    assert d.address == "http://h:3007/tools"
    assert SourceDescriptor(id="plain", transport={"kind": "bridge-internal", "bridge": "b"}).display_name == "plain"


def test_descriptor_to_wire():
    d = SourceDescriptor(id="ws", transport={"kind": "websocket", "url": "ws://x/mcp"}, categories=["a"])
    assert d.to_wire() == {
        "id": "ws",
        "displayName": "ws",
        "transport": "websocket",
        "address": "ws://x/mcp",
        "categories": ["a"],
        "toolCountHint": None,
    }


def test_source_health_defaults_and_wire():
    h = SourceHealth()
    assert h.state == HealthState.UNKNOWN
    assert h.to_wire("core") == {"id": "core", "state": "unknown", "lastCheckedAt": None, "consecutiveFailures": 0, "lastError": None}


def test_tool_descriptor_keeps_schema_verbatim():
    schema = {"type": "object", "properties": {"q": {"type": "string"}}, "required": ["q"], "x-custom": True}
    t = ToolDescriptor(name="search", source_id="core", description="Search", input_schema=schema)
    assert t.to_wire()["inputSchema"] == schema
    renamed = t.renamed("core_search")
    assert (renamed.name, renamed.original_name, renamed.source_id) == ("core_search", "search", "core")
    assert t.name == "search"
