# -*- coding: utf-8 -*-
"""Location: ./mcpunified/validation/jsonrpc.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

JSON-RPC Validation.
This module provides validation functions for JSON-RPC 2.0 requests and responses
according to the specification at https://www.jsonrpc.org/specification.

Inbound envelopes that fail validation are reported with the parse error code: the
front door treats "not JSON" and "not a JSON-RPC envelope" as the same failure.
Upstream replies are checked with :func:`validate_response` before their result is trusted.

Examples:
    >>> PARSE_ERROR
    -32700
    >>> try:
    ...     validate_request({'method': 'test'})  # missing jsonrpc
    ... except JSONRPCError as e:
    ...     e.code
    -32700
    >>> is_notification({"jsonrpc": "2.0", "method": "notifications/initialized"})
    True
"""

# Standard
from typing import Any, Dict, Optional, Union


class JSONRPCError(Exception):
    """JSON-RPC protocol error."""

    def __init__(
        self,
        code: int,
        message: str,
        data: Optional[Any] = None,
        request_id: Optional[Union[str, int]] = None,
    ):
        """Initialize JSON-RPC error.

        Args:
            code: Error code
            message: Error message
            data: Optional error data
            request_id: Optional request ID
        """
        self.code = code
        self.message = message
        self.data = data
        self.request_id = request_id
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to JSON-RPC error response dict.

        Returns:
            Error response dictionary

        Examples:
            >>> JSONRPCError(-32601, "Method not found: x", request_id=1).to_dict()
            {'jsonrpc': '2.0', 'id': 1, 'error': {'code': -32601, 'message': 'Method not found: x'}}

            Parse errors carry a null id:
            >>> JSONRPCError(-32700, "Parse error", data="Unexpected EOF").to_dict()
            {'jsonrpc': '2.0', 'id': None, 'error': {'code': -32700, 'message': 'Parse error', 'data': 'Unexpected EOF'}}
        """
        error = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data

        return {"jsonrpc": "2.0", "id": self.request_id, "error": error}


# Standard JSON-RPC error codes
PARSE_ERROR = -32700  # Invalid JSON
INVALID_REQUEST = -32600  # Invalid Request object
METHOD_NOT_FOUND = -32601  # Method not found
INVALID_PARAMS = -32602  # Invalid method parameters
INTERNAL_ERROR = -32603  # Internal JSON-RPC error
SERVER_ERROR_START = -32000  # Start of server error codes
SERVER_ERROR_END = -32099  # End of server error codes

NOTIFICATION_PREFIX = "notifications/"


def _recover_id(request: Any) -> Optional[Union[str, int]]:
    """Pull a usable id out of a possibly broken envelope.

    Args:
        request: Anything decoded from the wire

    Returns:
        The id when it is a string or integer, else None
    """
    if isinstance(request, dict):
        candidate = request.get("id")
        if isinstance(candidate, (str, int)) and not isinstance(candidate, bool):
            return candidate
    return None


def validate_request(request: Any) -> None:
    """Validate JSON-RPC request.

    Args:
        request: Decoded request body to validate

    Raises:
        JSONRPCError: If request is invalid

    Examples:
        Valid request:
        >>> validate_request({"jsonrpc": "2.0", "method": "tools/list", "id": 1})

        Valid notification (explicit null id):
        >>> validate_request({"jsonrpc": "2.0", "method": "tools/list", "id": None})

        Batches are not accepted:
        >>> validate_request([{"jsonrpc": "2.0", "method": "ping", "id": 1}])  # doctest: +ELLIPSIS
        Traceback (most recent call last):
            ...
        mcpunified.validation.jsonrpc.JSONRPCError: Request must be a JSON object

        Invalid version:
        >>> validate_request({"jsonrpc": "1.0", "method": "ping", "id": 1})  # doctest: +ELLIPSIS
        Traceback (most recent call last):
            ...
        mcpunified.validation.jsonrpc.JSONRPCError: Invalid JSON-RPC version

        Empty method:
        >>> validate_request({"jsonrpc": "2.0", "method": "", "id": 1})  # doctest: +ELLIPSIS
        Traceback (most recent call last):
            ...
        mcpunified.validation.jsonrpc.JSONRPCError: Invalid or missing method

        Invalid params type:
        >>> validate_request({"jsonrpc": "2.0", "method": "ping", "params": "x", "id": 1})  # doctest: +ELLIPSIS
        Traceback (most recent call last):
            ...
        mcpunified.validation.jsonrpc.JSONRPCError: Invalid params type

        Invalid ID type:
        >>> validate_request({"jsonrpc": "2.0", "method": "ping", "id": True})  # doctest: +ELLIPSIS
        Traceback (most recent call last):
            ...
        mcpunified.validation.jsonrpc.JSONRPCError: Invalid request ID type
    """
    if not isinstance(request, dict):
        raise JSONRPCError(PARSE_ERROR, "Request must be a JSON object", request_id=None)

    request_id = _recover_id(request)

    # Check jsonrpc version
    if request.get("jsonrpc") != "2.0":
        raise JSONRPCError(PARSE_ERROR, "Invalid JSON-RPC version", request_id=request_id)

    # Check method
    method = request.get("method")
    if not isinstance(method, str) or not method:
        raise JSONRPCError(PARSE_ERROR, "Invalid or missing method", request_id=request_id)

    # Null ids are notifications
    if request.get("id") is not None:
        raw_id = request["id"]
        if not isinstance(raw_id, (str, int)) or isinstance(raw_id, bool):
            raise JSONRPCError(PARSE_ERROR, "Invalid request ID type", request_id=None)

    # Check params if present
    params = request.get("params")
    if params is not None:
        if not isinstance(params, (dict, list)):
            raise JSONRPCError(PARSE_ERROR, "Invalid params type", request_id=request_id)


def is_notification(request: Dict[str, Any]) -> bool:
    """Whether a validated request expects no response.

    A request is a notification when its id is absent or null, or when its method sits
    in the ``notifications/`` namespace.

    Args:
        request: Validated request

    Returns:
        True when no response must be sent

    Examples:
        >>> is_notification({"jsonrpc": "2.0", "method": "tools/list", "id": 3})
        False
        >>> is_notification({"jsonrpc": "2.0", "method": "tools/list"})
        True
    """
    return request.get("id") is None or str(request.get("method", "")).startswith(NOTIFICATION_PREFIX)


def validate_response(response: Any) -> None:
    """Validate JSON-RPC response.

    Args:
        response: Response dictionary to validate

    Raises:
        JSONRPCError: If response is invalid

    Examples:
        Valid success response:
        >>> validate_response({"jsonrpc": "2.0", "result": 42, "id": 1})

        Valid response with null id (for errors during id parsing):
        >>> validate_response({"jsonrpc": "2.0", "error": {"code": -32700, "message": "Parse error"}, "id": None})

        Missing ID:
        >>> validate_response({"jsonrpc": "2.0", "result": 42})  # doctest: +ELLIPSIS
        Traceback (most recent call last):
            ...
        mcpunified.validation.jsonrpc.JSONRPCError: Missing response ID

        Both result and error present:
        >>> validate_response({"jsonrpc": "2.0", "result": 42, "error": {"code": -32601, "message": "x"}, "id": 1})  # doctest: +ELLIPSIS
        Traceback (most recent call last):
            ...
        mcpunified.validation.jsonrpc.JSONRPCError: Response cannot contain both result and error

        Invalid error code type:
        >>> validate_response({"jsonrpc": "2.0", "error": {"code": "invalid", "message": "Error"}, "id": 1})  # doctest: +ELLIPSIS
        Traceback (most recent call last):
            ...
        mcpunified.validation.jsonrpc.JSONRPCError: Error code must be integer
    """
    if not isinstance(response, dict):
        raise JSONRPCError(INVALID_REQUEST, "Response must be a JSON object", request_id=None)

    # Check jsonrpc version
    if response.get("jsonrpc") != "2.0":
        raise JSONRPCError(INVALID_REQUEST, "Invalid JSON-RPC version", request_id=_recover_id(response))

    # Check ID
    if "id" not in response:
        raise JSONRPCError(INVALID_REQUEST, "Missing response ID", request_id=None)

    response_id = response["id"]
    if not isinstance(response_id, (str, int, type(None))) or isinstance(response_id, bool):
        raise JSONRPCError(INVALID_REQUEST, "Invalid response ID type", request_id=None)

    # Check result XOR error
    has_result = "result" in response
    has_error = "error" in response

    if not has_result and not has_error:
        raise JSONRPCError(INVALID_REQUEST, "Response must contain either result or error", request_id=response_id)
    if has_result and has_error:
        raise JSONRPCError(INVALID_REQUEST, "Response cannot contain both result and error", request_id=response_id)

    # Validate error object
    if has_error:
        error = response["error"]
        if not isinstance(error, dict):
            raise JSONRPCError(INVALID_REQUEST, "Invalid error object type", request_id=response_id)

        if "code" not in error or "message" not in error:
            raise JSONRPCError(INVALID_REQUEST, "Error must contain code and message", request_id=response_id)

        if not isinstance(error["code"], int):
            raise JSONRPCError(INVALID_REQUEST, "Error code must be integer", request_id=response_id)

        if not isinstance(error["message"], str):
            raise JSONRPCError(INVALID_REQUEST, "Error message must be string", request_id=response_id)
