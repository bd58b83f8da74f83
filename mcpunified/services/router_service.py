# -*- coding: utf-8 -*-
"""Location: ./mcpunified/services/router_service.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Aggregating Router.
Owns the merged tool index and dispatches tool calls to the owning source's adapter.

The index is an immutable snapshot. Every rebuild (full refresh, targeted refresh or
eviction) computes a new snapshot from the per-source catalogs and swaps it in with a
single assignment, so concurrent readers always see either the old or the new index.

Merge order is registration order. Under the ``first_wins`` policy a later source's
duplicate tool name is dropped with a warning; under ``namespaced`` every tool is exposed
as ``<source_id><separator><tool>``.
"""

# Standard
import asyncio
from dataclasses import dataclass, field
import time
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

# First-Party
from mcpunified.adapters.base import SourceAdapter
from mcpunified.errors import GatewayError, SourceUnavailableError, ToolNotFoundError
from mcpunified.models import CollisionPolicy, HealthState, ToolDescriptor
from mcpunified.registry import SourceRegistry
from mcpunified.services.logging_service import logging_service
from mcpunified.services.metrics_service import MetricsService

logger = logging_service.get_logger(__name__)


@dataclass(frozen=True)
class ToolIndex:
    """Immutable merged tool namespace.

    Examples:
        >>> idx = ToolIndex.build([ToolDescriptor(name="echo", source_id="a")])
        >>> idx.get("echo").source_id, len(idx)
        ('a', 1)
    """

    tools: Tuple[ToolDescriptor, ...] = ()
    by_name: Mapping[str, ToolDescriptor] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def build(cls, tools: List[ToolDescriptor]) -> "ToolIndex":
        """Freeze a list of already de-duplicated tools.

        Args:
            tools: Tools in merge order

        Returns:
            New index
        """
        return cls(tools=tuple(tools), by_name=MappingProxyType({t.name: t for t in tools}))

    def get(self, name: str) -> Optional[ToolDescriptor]:
        """Look up a tool by merged name.

        Args:
            name: Tool name

        Returns:
            ToolDescriptor or None
        """
        return self.by_name.get(name)

    def __len__(self) -> int:
        return len(self.tools)


def merge_catalogs(
    order: List[str],
    catalogs: Mapping[str, Tuple[ToolDescriptor, ...]],
    policy: CollisionPolicy = CollisionPolicy.FIRST_WINS,
    separator: str = "_",
) -> List[ToolDescriptor]:
    """Merge per-source catalogs into one duplicate-free list.

    Args:
        order: Source ids in registration order
        catalogs: Tools per source, named as each source names them
        policy: Collision policy
        separator: Joins source id and tool name under the namespaced policy

    Returns:
        Merged tools

    Examples:
        >>> a = (ToolDescriptor(name="echo", source_id="a"),)
        >>> b = (ToolDescriptor(name="echo", source_id="b"), ToolDescriptor(name="sum", source_id="b"))
        >>> [(t.name, t.source_id) for t in merge_catalogs(["a", "b"], {"a": a, "b": b})]
        [('echo', 'a'), ('sum', 'b')]
        >>> [t.name for t in merge_catalogs(["a", "b"], {"a": a, "b": b}, CollisionPolicy.NAMESPACED)]
        ['a_echo', 'b_echo', 'b_sum']
    """
    merged: List[ToolDescriptor] = []
    owners: Dict[str, str] = {}
    for source_id in order:
        for tool in catalogs.get(source_id, ()):
            if policy == CollisionPolicy.NAMESPACED:
                tool = tool.renamed(f"{source_id}{separator}{tool.original_name}")
            owner = owners.get(tool.name)
            if owner is not None:
                logger.warning(f"Duplicate tool '{tool.name}' from source '{source_id}' ignored; already provided by '{owner}'")
                continue
            owners[tool.name] = source_id
            merged.append(tool)
    return merged


class AggregatingRouter:
    """Merged tool index plus call dispatch."""

    def __init__(
        self,
        registry: SourceRegistry,
        adapters: Mapping[str, SourceAdapter],
        health_of: Callable[[str], HealthState],
        policy: CollisionPolicy = CollisionPolicy.FIRST_WINS,
        separator: str = "_",
        metrics: Optional[MetricsService] = None,
    ):
        """Create a router.

        Args:
            registry: Source registry; decides merge order
            adapters: Adapter per source id
            health_of: Current health state of a source
            policy: Collision policy
            separator: Namespace separator for the namespaced policy
            metrics: Optional metrics sink for tool calls
        """
        self.registry = registry
        self.adapters = adapters
        self.health_of = health_of
        self.policy = CollisionPolicy(policy)
        self.separator = separator
        self.metrics = metrics
        self._catalogs: Mapping[str, Tuple[ToolDescriptor, ...]] = MappingProxyType({})
        self._index = ToolIndex()

    @property
    def index(self) -> ToolIndex:
        """Current snapshot.

        Returns:
            ToolIndex
        """
        return self._index

    def catalog_sizes(self) -> Dict[str, int]:
        """Number of tools each source contributed to the last listing.

        Returns:
            Tool count per source id
        """
        return {source_id: len(tools) for source_id, tools in self._catalogs.items()}

    def has_catalog(self, source_id: str) -> bool:
        """Whether the last listing of a source succeeded.

        Args:
            source_id: Source id

        Returns:
            True when the source has a catalog in the index, even an empty one
        """
        return source_id in self._catalogs

    def _swap(self, catalogs: Dict[str, Tuple[ToolDescriptor, ...]]) -> None:
        """Install new catalogs and the index merged from them.

        Args:
            catalogs: Complete per-source catalogs
        """
        merged = merge_catalogs(self.registry.ids(), catalogs, self.policy, self.separator)
        self._catalogs, self._index = MappingProxyType(catalogs), ToolIndex.build(merged)

    async def _fetch(self, source_id: str) -> Tuple[ToolDescriptor, ...]:
        """List one source's tools.

        Args:
            source_id: Source to list

        Returns:
            Tools named as the source names them

        Raises:
            SourceUnavailableError: If no adapter is bound to the source
        """
        adapter = self.adapters.get(source_id)
        if adapter is None:
            raise SourceUnavailableError(f"{source_id}: no adapter")
        return tuple(await adapter.list_tools())

    async def refresh_index(self) -> ToolIndex:
        """Rebuild the whole index from every source that is not unreachable.

        A source whose listing fails contributes nothing to the new index; the other
        sources are unaffected.

        Returns:
            The new snapshot
        """
        eligible = [source_id for source_id in self.registry.ids() if self.health_of(source_id) != HealthState.UNREACHABLE]
        results = await asyncio.gather(*(self._fetch(source_id) for source_id in eligible), return_exceptions=True)

        catalogs: Dict[str, Tuple[ToolDescriptor, ...]] = {}
        for source_id, result in zip(eligible, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning(f"Failed to list tools from {source_id}: {result}")
                continue
            catalogs[source_id] = result
            logger.info(f"Loaded {len(result)} tools from {source_id}")

        self._swap(catalogs)
        logger.info(f"Tool index rebuilt: {len(self._index)} tools from {len(catalogs)}/{len(self.registry)} sources")
        return self._index

    async def refresh_source(self, source_id: str) -> ToolIndex:
        """Re-list one source and rebuild the index around it.

        Args:
            source_id: Source to re-list

        Returns:
            The new snapshot
        """
        if self.health_of(source_id) == HealthState.UNREACHABLE:
            return self.evict(source_id)
        try:
            tools = await self._fetch(source_id)
        except GatewayError as e:
            logger.warning(f"Failed to list tools from {source_id}: {e}")
            return self.evict(source_id)

        self._swap({**self._catalogs, source_id: tools})
        logger.info(f"Refreshed {source_id}: {len(tools)} tools; index now {len(self._index)} tools")
        return self._index

    def evict(self, source_id: str) -> ToolIndex:
        """Drop a source's tools without any I/O.

        Args:
            source_id: Source to drop

        Returns:
            The new snapshot
        """
        if source_id in self._catalogs:
            self._swap({sid: tools for sid, tools in self._catalogs.items() if sid != source_id})
            logger.info(f"Evicted {source_id} from the tool index")
        return self._index

    def list_tools(self) -> Tuple[ToolDescriptor, ...]:
        """Current tools; no I/O.

        Returns:
            Tools in merge order
        """
        return self._index.tools

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Any:
        """Dispatch a call to the owning source. Never retried.

        Args:
            name: Merged-namespace tool name
            arguments: Opaque arguments

        Returns:
            The source's result, unchanged

        Raises:
            ToolNotFoundError: If no source owns the name
            SourceUnavailableError: If the owner has no adapter
        """
        tool = self._index.get(name)
        if tool is None:
            raise ToolNotFoundError(name)
        adapter = self.adapters.get(tool.source_id)
        if adapter is None:
            raise SourceUnavailableError(f"{tool.source_id}: no adapter")

        started = time.monotonic()
        success = False
        try:
            result = await adapter.call_tool(tool.original_name, arguments)
            success = True
            return result
        finally:
            if self.metrics is not None:
                self.metrics.record_tool_call(tool.source_id, tool.name, time.monotonic() - started, success)
