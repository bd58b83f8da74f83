# -*- coding: utf-8 -*-
"""Location: ./mcpunified/handlers/__init__.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Handlers Package.
Provides request handlers for the unified gateway including:
- JSON-RPC method dispatch
"""

from mcpunified.handlers.rpc import handle_message, handle_request, METHODS

__all__ = ["handle_message", "handle_request", "METHODS"]
