# -*- coding: utf-8 -*-
"""Location: ./mcpunified/adapters/bridge_adapter.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

In-process Bridge Adapter.
A bridge is any object living in the gateway process that exposes:

- ``get_tools()`` returning a list of MCP tool objects,
- ``execute_tool(name, arguments)`` returning the tool result,
- optionally ``get_status()`` returning a mapping with a ``connected`` flag.

Each method may be sync or async. Bridges are resolved from the mapping handed to the
gateway, or from a ``package.module:factory`` import path, where a class or function is
called without arguments to build the bridge.
"""

# Standard
import importlib
import inspect
from typing import Any, Dict, List, Mapping, Optional

# First-Party
from mcpunified.adapters.base import as_gateway_error, parse_tool_list, SourceAdapter
from mcpunified.config import Settings
from mcpunified.errors import GatewayError, SourceUnavailableError, ToolNotFoundError, UpstreamError
from mcpunified.models import BridgeTransportConfig, SourceDescriptor, ToolDescriptor
from mcpunified.services.logging_service import logging_service

logger = logging_service.get_logger(__name__)


def parse_bridge_path(name: str) -> tuple[str, str]:
    """Split ``module:attr`` (or ``module.attr``) into its parts.

    Args:
        name: Import path

    Returns:
        (module, attribute)

    Examples:
        >>> parse_bridge_path("pkg.bridges:MemoryBridge")
        ('pkg.bridges', 'MemoryBridge')
        >>> parse_bridge_path("pkg.bridges.MemoryBridge")
        ('pkg.bridges', 'MemoryBridge')
        >>> parse_bridge_path("memory")
        ('', 'memory')
    """
    if ":" in name:
        module, attr = name.split(":", 1)
        return module, attr
    module, _, attr = name.rpartition(".")
    return module, attr


def resolve_bridge(identifier: str, bridges: Optional[Mapping[str, Any]] = None) -> Any:
    """Find the bridge object for an identifier.

    Args:
        identifier: Key into ``bridges`` or an import path
        bridges: Bridges supplied by the embedding application

    Returns:
        Bridge object

    Raises:
        SourceUnavailableError: If the identifier resolves to nothing

    Examples:
        >>> resolve_bridge("x", {"x": "bridge"})
        'bridge'
        >>> resolve_bridge("collections:OrderedDict")
        OrderedDict()
    """
    if bridges and identifier in bridges:
        return bridges[identifier]

    module_name, attr = parse_bridge_path(identifier)
    if not module_name:
        raise SourceUnavailableError(f"Unknown bridge: {identifier}")
    try:
        target = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as e:
        raise SourceUnavailableError(f"Cannot load bridge {identifier}: {e}") from e
    if inspect.isclass(target) or inspect.isfunction(target):
        target = target()
    return target


async def _maybe_await(value: Any) -> Any:
    """Await a value when it is awaitable.

    Args:
        value: Result of a sync or async bridge method

    Returns:
        The plain value
    """
    if inspect.isawaitable(value):
        return await value
    return value


class BridgeSourceAdapter(SourceAdapter):
    """Adapter for in-process bridges."""

    def __init__(self, descriptor: SourceDescriptor, settings: Settings, bridges: Optional[Mapping[str, Any]] = None):
        """Bind to a bridge source.

        Args:
            descriptor: Source with a BridgeTransportConfig
            settings: Gateway settings
            bridges: Bridges supplied by the embedding application
        """
        super().__init__(descriptor, settings)
        self.config: BridgeTransportConfig = descriptor.transport
        self._bridges = bridges
        self.bridge: Optional[Any] = None

    async def connect(self) -> None:
        """Resolve the bridge object; a failure is left for the probe to report."""
        try:
            self._resolve()
        except SourceUnavailableError as e:
            logger.warning(str(e))

    def _resolve(self) -> Any:
        """Resolve once and cache.

        Returns:
            Bridge object
        """
        if self.bridge is None:
            self.bridge = resolve_bridge(self.config.bridge, self._bridges)
        return self.bridge

    async def close(self) -> None:
        """Let bridges with a ``close`` method release their resources."""
        closer = getattr(self.bridge, "close", None)
        if callable(closer):
            await _maybe_await(closer())

    async def _probe(self) -> None:
        """No-op unless the bridge reports itself disconnected."""
        bridge = self._resolve()
        get_status = getattr(bridge, "get_status", None)
        if not callable(get_status):
            return
        status = await _maybe_await(get_status())
        if isinstance(status, Mapping) and status.get("connected") is False:
            raise SourceUnavailableError(status.get("error") or "bridge reports disconnected")

    async def list_tools(self) -> List[ToolDescriptor]:
        """Ask the bridge for its tools.

        Returns:
            Tools named as the bridge names them
        """
        try:
            raw = await self._bounded(_maybe_await(self._resolve().get_tools()), "get_tools")
        except GatewayError:
            raise
        except Exception as e:
            raise as_gateway_error(self.source_id, e) from e
        return parse_tool_list(self.source_id, raw)

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Any:
        """Execute a tool on the bridge.

        Exceptions raised by the bridge's own tool code are tool-level failures and become
        UpstreamError; a LookupError for the tool name becomes ToolNotFoundError.

        Args:
            name: Tool name as known to the bridge
            arguments: Opaque arguments

        Returns:
            The bridge's result
        """
        bridge = self._resolve()
        try:
            return await self._bounded(_maybe_await(bridge.execute_tool(name, arguments)), name)
        except GatewayError:
            raise
        except LookupError as e:
            logger.debug(f"{self.source_id}: bridge does not know tool {name}: {e}")
            raise ToolNotFoundError(name) from e
        except Exception as e:
            raise UpstreamError(f"{self.source_id}: {e}", data={"type": type(e).__name__, "message": str(e)}) from e
