# -*- coding: utf-8 -*-
"""Location: ./mcpunified/handlers/rpc.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

JSON-RPC Method Dispatch.
Every supported method maps to one coroutine in ``METHODS``; the table is checked when the
module is imported. :func:`handle_message` is the single place where raw bodies become
envelopes and errors become JSON-RPC error responses; both ``POST /mcp`` and the ``/ws``
endpoint use it.

Examples:
    >>> sorted(METHODS)
    ['initialize', 'ping', 'tools/call', 'tools/list']
"""

# Standard
import inspect
import json
import time
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

# Third-Party
from fastapi.encoders import jsonable_encoder

# First-Party
from mcpunified import __version__
from mcpunified.errors import GatewayError, InternalError, InvalidParamsError, MethodNotFoundError
from mcpunified.gateway import GatewayInstance
from mcpunified.services.logging_service import logging_service
from mcpunified.validation.jsonrpc import is_notification, JSONRPCError, NOTIFICATION_PREFIX, PARSE_ERROR, validate_request

logger = logging_service.get_logger(__name__)

Handler = Callable[[GatewayInstance, Dict[str, Any]], Awaitable[Any]]


async def handle_initialize(gateway: GatewayInstance, params: Dict[str, Any]) -> Dict[str, Any]:
    """Answer the MCP handshake.

    Args:
        gateway: Serving gateway
        params: Client capabilities (ignored)

    Returns:
        Server capabilities and identity
    """
    return {
        "protocolVersion": gateway.settings.protocol_version,
        "capabilities": {"tools": {"listChanged": False}},
        "serverInfo": {"name": gateway.settings.app_name, "version": __version__},
    }


async def handle_ping(gateway: GatewayInstance, params: Dict[str, Any]) -> Dict[str, Any]:
    """Liveness check.

    Args:
        gateway: Serving gateway
        params: Unused

    Returns:
        Empty result
    """
    return {}


async def handle_tools_list(gateway: GatewayInstance, params: Dict[str, Any]) -> Dict[str, Any]:
    """Return the merged tool index.

    Args:
        gateway: Serving gateway
        params: Unused (no pagination)

    Returns:
        ``tools`` plus a ``_meta`` block describing the sources
    """
    tools = gateway.router.list_tools()
    return {
        "tools": [tool.to_wire() for tool in tools],
        "_meta": {
            "gateway": gateway.settings.app_name,
            "totalTools": len(tools),
            "sources": gateway.source_states(),
        },
    }


async def handle_tools_call(gateway: GatewayInstance, params: Dict[str, Any]) -> Any:
    """Route a tool call.

    Args:
        gateway: Serving gateway
        params: ``{"name": str, "arguments": object}``

    Returns:
        The owning source's result

    Raises:
        InvalidParamsError: If ``name`` or ``arguments`` is malformed
    """
    name = params.get("name")
    if not isinstance(name, str) or not name:
        raise InvalidParamsError("tools/call requires a non-empty 'name'")
    arguments = params.get("arguments")
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        raise InvalidParamsError("'arguments' must be an object")
    return await gateway.router.call_tool(name, arguments)


def _check_method_table(table: Mapping[str, Handler]) -> Mapping[str, Handler]:
    """Reject a method table with non-coroutine handlers.

    Args:
        table: Method name to handler

    Returns:
        Read-only view of the table

    Raises:
        TypeError: If a handler is not an async function
    """
    for method, handler in table.items():
        if not inspect.iscoroutinefunction(handler):
            raise TypeError(f"Handler for {method} must be an async function")
    return MappingProxyType(dict(table))


METHODS: Mapping[str, Handler] = _check_method_table(
    {
        "initialize": handle_initialize,
        "ping": handle_ping,
        "tools/list": handle_tools_list,
        "tools/call": handle_tools_call,
    }
)


def encode_result(value: Any) -> Any:
    """Turn a handler result into plain JSON types.

    Args:
        value: Handler result, possibly holding datetimes, sets or models

    Returns:
        JSON-compatible copy of ``value``

    Raises:
        ValueError: If the value cannot be represented in strict JSON (NaN, infinities, opaque objects)

    Examples:
        >>> from datetime import datetime
        >>> encode_result({"when": datetime(2025, 1, 2, 3, 4, 5), "tags": {"a"}})
        {'when': '2025-01-02T03:04:05', 'tags': ['a']}
        >>> encode_result({"x": float("nan")})  # doctest: +ELLIPSIS
        Traceback (most recent call last):
            ...
        ValueError: Out of range float values are not JSON compliant...
    """
    encoded = jsonable_encoder(value)
    json.dumps(encoded, allow_nan=False)
    return encoded


async def dispatch(gateway: GatewayInstance, request: Dict[str, Any]) -> Any:
    """Run the handler for a validated request.

    Args:
        gateway: Serving gateway
        request: Validated envelope

    Returns:
        Handler result

    Raises:
        MethodNotFoundError: If the method has no handler
        InvalidParamsError: If params is not an object
    """
    method = request["method"]
    handler = METHODS.get(method)
    if handler is None:
        raise MethodNotFoundError(method)
    params = request.get("params")
    if params is None:
        params = {}
    if not isinstance(params, dict):
        raise InvalidParamsError(f"{method} expects params to be an object")
    return await handler(gateway, params)


async def handle_request(gateway: GatewayInstance, request: Any) -> Optional[Dict[str, Any]]:
    """Validate, dispatch and answer one decoded envelope.

    Args:
        gateway: Serving gateway
        request: Decoded JSON body

    Returns:
        Response envelope, or None for notifications
    """
    started = time.monotonic()
    try:
        validate_request(request)
    except JSONRPCError as e:
        gateway.metrics.record_request("<invalid>", time.monotonic() - started, False)
        return e.to_dict()

    method = request["method"]
    request_id = request.get("id")
    notification = is_notification(request)
    success = True
    try:
        if method.startswith(NOTIFICATION_PREFIX):
            logger.debug(f"Ignoring notification {method}")
            result: Any = None
        else:
            result = encode_result(await dispatch(gateway, request))
        response = {"jsonrpc": "2.0", "id": request_id, "result": result}
    except GatewayError as e:
        success = False
        logger.info(f"{method} failed: {e}")
        response = e.to_jsonrpc(request_id).to_dict()
    except Exception as e:
        success = False
        logger.exception(f"Unexpected error handling {method}: {e}")
        response = InternalError("Internal error").to_jsonrpc(request_id).to_dict()
    gateway.metrics.record_request(method, time.monotonic() - started, success)

    if notification:
        return None
    return response


async def handle_message(gateway: GatewayInstance, body: Union[str, bytes]) -> Optional[Dict[str, Any]]:
    """Parse a raw body and answer it.

    Args:
        gateway: Serving gateway
        body: Raw request text

    Returns:
        Response envelope, or None for notifications
    """
    try:
        request = json.loads(body)
    except (UnicodeDecodeError, ValueError) as e:
        gateway.metrics.record_request("<parse-error>", 0.0, False)
        return JSONRPCError(PARSE_ERROR, "Parse error", data=str(e)).to_dict()
    return await handle_request(gateway, request)
