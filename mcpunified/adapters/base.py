# -*- coding: utf-8 -*-
"""Location: ./mcpunified/adapters/base.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Base Source Adapter Interface.
Every transport adapter exposes the same capability set to the router: a bounded health
probe, a tool listing normalised into ToolDescriptor objects, and an opaque tool call.

Adapters never let a raw transport exception escape ``list_tools``/``call_tool``: failures
are converted to SourceUnavailableError, ProtocolMismatchError, ToolNotFoundError or
UpstreamError first. ``probe_health`` never raises at all.
"""

# Standard
from abc import ABC, abstractmethod
import asyncio
import time
from typing import Any, Awaitable, Dict, List, Optional, TypeVar

# First-Party
from mcpunified.config import Settings
from mcpunified.errors import GatewayError, ProtocolMismatchError, SourceUnavailableError, TOOL_NOT_FOUND, ToolNotFoundError, UpstreamError
from mcpunified.models import HealthResult, SourceDescriptor, ToolDescriptor
from mcpunified.services.logging_service import logging_service
from mcpunified.validation.jsonrpc import JSONRPCError, METHOD_NOT_FOUND, validate_response

logger = logging_service.get_logger(__name__)

T = TypeVar("T")


class SourceAdapter(ABC):
    """Base class for source adapters.

    Subclasses implement ``_probe``, ``list_tools`` and ``call_tool``; ``connect`` and
    ``close`` default to no-ops for stateless transports.

    Examples:
        >>> try:
        ...     SourceAdapter(None, None)
        ... except TypeError:
        ...     print("Cannot instantiate abstract class")
        Cannot instantiate abstract class
    """

    def __init__(self, descriptor: SourceDescriptor, settings: Settings):
        """Bind the adapter to one source.

        Args:
            descriptor: Source this adapter talks to
            settings: Gateway settings (timeouts)
        """
        self.descriptor = descriptor
        self.settings = settings

    @property
    def source_id(self) -> str:
        """Id of the bound source.

        Returns:
            Source id
        """
        return self.descriptor.id

    async def connect(self) -> None:
        """Open persistent resources. Failures are left for the first probe to report."""

    async def close(self) -> None:
        """Release persistent resources."""

    async def probe_health(self) -> HealthResult:
        """Cheapest liveness check the transport allows, bounded by ``health_check_timeout``.

        Returns:
            HealthResult; ``ok`` is False on timeout or any error
        """
        started = time.monotonic()
        try:
            await asyncio.wait_for(self._probe(), timeout=self.settings.health_check_timeout)
        except asyncio.TimeoutError:
            return HealthResult(ok=False, error=f"health probe timed out after {self.settings.health_check_timeout}s")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return HealthResult(ok=False, error=str(e) or type(e).__name__)
        return HealthResult(ok=True, latency_ms=round((time.monotonic() - started) * 1000, 2))

    @abstractmethod
    async def _probe(self) -> None:
        """Raise if the source is not alive."""

    @abstractmethod
    async def list_tools(self) -> List[ToolDescriptor]:
        """Fetch the source's tool catalog.

        Returns:
            Tools named as the source names them

        Raises:
            SourceUnavailableError: If the source cannot be reached
            ProtocolMismatchError: If the reply has the wrong shape
        """

    @abstractmethod
    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Any:
        """Invoke one tool; arguments are forwarded untouched.

        Args:
            name: Tool name as known to the source
            arguments: Opaque arguments

        Returns:
            The source's result, unchanged

        Raises:
            ToolNotFoundError: If the source does not know the tool
            SourceUnavailableError: On transport failure or timeout
            UpstreamError: If the source reports a tool-level error
        """

    async def _bounded(self, awaitable: Awaitable[T], what: str) -> T:
        """Await an upstream operation under ``tool_timeout``.

        Args:
            awaitable: Operation to run
            what: Short description for the error message

        Returns:
            The operation's result

        Raises:
            SourceUnavailableError: On timeout
        """
        try:
            return await asyncio.wait_for(awaitable, timeout=self.settings.tool_timeout)
        except asyncio.TimeoutError as e:
            raise SourceUnavailableError(f"{self.source_id}: {what} timed out after {self.settings.tool_timeout}s") from e

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.source_id} {self.descriptor.address}>"


def parse_tool_list(source_id: str, raw_tools: Any) -> List[ToolDescriptor]:
    """Normalise an upstream tool array into ToolDescriptor objects.

    Args:
        source_id: Owning source
        raw_tools: Decoded ``tools`` array

    Returns:
        Tools in upstream order

    Raises:
        ProtocolMismatchError: If the value is not a list of named tool objects

    Examples:
        >>> [t.name for t in parse_tool_list("a", [{"name": "echo", "inputSchema": {"type": "object"}}])]
        ['echo']
        >>> parse_tool_list("a", {"name": "echo"})
        Traceback (most recent call last):
            ...
        mcpunified.errors.ProtocolMismatchError: a: tool list is not an array
    """
    if not isinstance(raw_tools, list):
        raise ProtocolMismatchError(f"{source_id}: tool list is not an array")

    tools: List[ToolDescriptor] = []
    for raw in raw_tools:
        if not isinstance(raw, dict) or not isinstance(raw.get("name"), str) or not raw["name"]:
            raise ProtocolMismatchError(f"{source_id}: tool entry without a name", data=raw if isinstance(raw, dict) else None)
        schema = raw.get("inputSchema", raw.get("input_schema"))
        fields: Dict[str, Any] = {"name": raw["name"], "source_id": source_id, "description": raw.get("description") or ""}
        if isinstance(schema, dict):
            fields["input_schema"] = schema
        tools.append(ToolDescriptor(**fields))
    return tools


def unwrap_rpc_result(source_id: str, reply: Any, tool_name: Optional[str] = None) -> Any:
    """Extract ``result`` from an upstream JSON-RPC reply.

    Args:
        source_id: Replying source
        reply: Decoded reply
        tool_name: Tool being called, when the reply answers ``tools/call``

    Returns:
        The ``result`` member

    Raises:
        ProtocolMismatchError: If the reply is not a JSON-RPC response
        ToolNotFoundError: If the source reports the tool as unknown
        UpstreamError: For any other error reply; ``data`` holds the upstream error object

    Examples:
        >>> unwrap_rpc_result("a", {"jsonrpc": "2.0", "id": 1, "result": {"tools": []}})
        {'tools': []}
        >>> unwrap_rpc_result("a", {"jsonrpc": "2.0", "id": 1, "error": {"code": -32601, "message": "no"}}, tool_name="x")
        Traceback (most recent call last):
            ...
        mcpunified.errors.ToolNotFoundError: Tool not found: x
    """
    try:
        validate_response(reply)
    except JSONRPCError as e:
        raise ProtocolMismatchError(f"{source_id}: {e.message}") from e

    if "error" in reply:
        error = reply["error"]
        if tool_name is not None and error["code"] in (METHOD_NOT_FOUND, TOOL_NOT_FOUND):
            raise ToolNotFoundError(tool_name)
        raise UpstreamError(f"{source_id}: {error['message']}", data=error)
    return reply["result"]


def as_gateway_error(source_id: str, exc: Exception) -> GatewayError:
    """Map an arbitrary transport exception to the taxonomy.

    Args:
        source_id: Failing source
        exc: Exception raised by the transport

    Returns:
        The exception itself if already a GatewayError, else a SourceUnavailableError

    Examples:
        >>> as_gateway_error("a", ConnectionRefusedError("refused")).message
        'a: refused'
    """
    if isinstance(exc, GatewayError):
        return exc
    logger.debug(f"{source_id}: transport failure {type(exc).__name__}: {exc}")
    return SourceUnavailableError(f"{source_id}: {str(exc) or type(exc).__name__}")
