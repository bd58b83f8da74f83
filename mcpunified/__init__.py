# -*- coding: utf-8 -*-
"""Location: ./mcpunified/__init__.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

MCP Unified Gateway - one JSON-RPC front door for stdio, HTTP, WebSocket and in-process MCP tool sources.
"""

__author__ = "Mihai Criveti"
__copyright__ = "Copyright 2025"
__license__ = "Apache 2.0"
__version__ = "0.3.0"
__description__ = "Aggregating MCP gateway with health-aware routing and a stdio bridge"
__packages__ = ["mcpunified"]

# Export main components for easier imports
__all__ = [
    "__version__",
    "__author__",
    "__license__",
    "gateway",
    "supervisor",
    "wrapper",
]
