# -*- coding: utf-8 -*-
"""Location: ./mcpunified/errors.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Gateway Error Taxonomy.
Every failure that crosses the router boundary is one of these classes. Each carries the
JSON-RPC error code the front door answers with, so only the front door turns errors into
envelopes.

Examples:
    >>> err = ToolNotFoundError("ping")
    >>> err.code, str(err)
    (-32001, 'Tool not found: ping')
    >>> UpstreamError("boom", data={"detail": 1}).to_jsonrpc(7).to_dict()["error"]["data"]
    {'detail': 1}
    >>> issubclass(SourceUnavailableError, GatewayError)
    True
"""

# Standard
from typing import Any, Optional, Union

# First-Party
from mcpunified.validation.jsonrpc import INTERNAL_ERROR, INVALID_PARAMS, JSONRPCError, METHOD_NOT_FOUND, PARSE_ERROR

TOOL_NOT_FOUND = -32001
SOURCE_UNAVAILABLE = -32002
UPSTREAM_ERROR = -32003
PROTOCOL_MISMATCH = -32004


class GatewayError(Exception):
    """Base class for gateway errors."""

    code: int = INTERNAL_ERROR

    def __init__(self, message: str, data: Optional[Any] = None):
        """Initialize the error.

        Args:
            message: Client-facing message
            data: Optional payload placed in ``error.data``
        """
        super().__init__(message)
        self.message = message
        self.data = data

    def to_jsonrpc(self, request_id: Optional[Union[str, int]] = None) -> JSONRPCError:
        """Convert to the protocol-level error.

        Args:
            request_id: Id of the request being answered

        Returns:
            JSONRPCError carrying this error's code and message
        """
        return JSONRPCError(self.code, self.message, self.data, request_id=request_id)


class DuplicateSourceIdError(GatewayError):
    """Raised when a source id is registered twice."""

    def __init__(self, source_id: str):
        """Initialize the error.

        Args:
            source_id: The clashing id
        """
        super().__init__(f"Source already registered: {source_id}")
        self.source_id = source_id


class ParseError(GatewayError):
    """Body is not JSON, or not a JSON-RPC 2.0 envelope."""

    code = PARSE_ERROR


class MethodNotFoundError(GatewayError):
    """Method is not in the dispatch table."""

    code = METHOD_NOT_FOUND

    def __init__(self, method: str):
        """Initialize the error.

        Args:
            method: The unknown method
        """
        super().__init__(f"Method not found: {method}")


class InvalidParamsError(GatewayError):
    """Params do not match what the method expects."""

    code = INVALID_PARAMS


class InternalError(GatewayError):
    """Unexpected failure; the client only ever sees a generic message."""

    code = INTERNAL_ERROR


class ToolNotFoundError(GatewayError):
    """Tool name is absent from the merged index (or from the source itself)."""

    code = TOOL_NOT_FOUND

    def __init__(self, name: str):
        """Initialize the error.

        Args:
            name: The missing tool name
        """
        super().__init__(f"Tool not found: {name}")
        self.tool_name = name


class SourceUnavailableError(GatewayError):
    """Transport failure or timeout talking to a source."""

    code = SOURCE_UNAVAILABLE


class UpstreamError(GatewayError):
    """The source executed the call and reported a tool-level error; ``data`` holds its payload verbatim."""

    code = UPSTREAM_ERROR


class ProtocolMismatchError(GatewayError):
    """The source answered, but not in the shape its transport promised."""

    code = PROTOCOL_MISMATCH


class GatewayStartupError(GatewayError):
    """No listener could be started."""
