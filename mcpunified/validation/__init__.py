# -*- coding: utf-8 -*-
"""Location: ./mcpunified/validation/__init__.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Validation Package.
Provides JSON-RPC request/response validation for the unified gateway.
"""

from mcpunified.validation.jsonrpc import is_notification, JSONRPCError, validate_request, validate_response

__all__ = ["validate_request", "validate_response", "is_notification", "JSONRPCError"]
