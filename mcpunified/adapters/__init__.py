# -*- coding: utf-8 -*-
"""Location: ./mcpunified/adapters/__init__.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Source Adapter Package.
One adapter per transport kind:
- stdio: local MCP server child process
- http: stateless HTTP (JSON-RPC, direct or health-only dialects)
- websocket: persistent JSON-RPC over WebSocket
- bridge-internal: in-process bridge objects

Examples:
    >>> from mcpunified.config import Settings
    >>> from mcpunified.models import SourceDescriptor
    >>> d = SourceDescriptor(id="ws", transport={"kind": "websocket", "url": "ws://localhost:3003/mcp"})
    >>> type(build_adapter(d, Settings(_env_file=None))).__name__
    'WebSocketSourceAdapter'
"""

# Standard
from typing import Any, Mapping, Optional

# First-Party
from mcpunified.adapters.base import SourceAdapter
from mcpunified.adapters.bridge_adapter import BridgeSourceAdapter
from mcpunified.adapters.http_adapter import HttpSourceAdapter
from mcpunified.adapters.stdio_adapter import StdioSourceAdapter
from mcpunified.adapters.websocket_adapter import WebSocketSourceAdapter
from mcpunified.config import Settings
from mcpunified.models import BridgeTransportConfig, HttpTransportConfig, SourceDescriptor, StdioTransportConfig, WebSocketTransportConfig


def build_adapter(descriptor: SourceDescriptor, settings: Settings, bridges: Optional[Mapping[str, Any]] = None) -> SourceAdapter:
    """Create the adapter matching a descriptor's transport variant.

    Args:
        descriptor: Source to adapt
        settings: Gateway settings
        bridges: In-process bridges available to bridge-internal sources

    Returns:
        A new, unconnected adapter

    Raises:
        TypeError: For a transport variant with no adapter
    """
    transport = descriptor.transport
    if isinstance(transport, HttpTransportConfig):
        return HttpSourceAdapter(descriptor, settings)
    if isinstance(transport, WebSocketTransportConfig):
        return WebSocketSourceAdapter(descriptor, settings)
    if isinstance(transport, StdioTransportConfig):
        return StdioSourceAdapter(descriptor, settings)
    if isinstance(transport, BridgeTransportConfig):
        return BridgeSourceAdapter(descriptor, settings, bridges)
    raise TypeError(f"No adapter for transport {type(transport).__name__}")


__all__ = [
    "SourceAdapter",
    "HttpSourceAdapter",
    "WebSocketSourceAdapter",
    "StdioSourceAdapter",
    "BridgeSourceAdapter",
    "build_adapter",
]
