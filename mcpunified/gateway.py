# -*- coding: utf-8 -*-
"""Location: ./mcpunified/gateway.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Gateway Instance.
All runtime state of one gateway lives in a GatewayInstance: the source registry, one
adapter per source, the health monitor and its health map, the aggregating router and its
tool index, request metrics, and the state of the listeners serving it. Components receive
the instance (or the parts they need) explicitly, so several gateways can coexist in one
process, as the tests do.

Examples:
    >>> from mcpunified.config import Settings
    >>> gw = GatewayInstance(Settings(_env_file=None, use_default_sources=False))
    >>> len(gw.registry), gw.status()
    (0, 'healthy')
    >>> gw.set_listener("primary", False)
    >>> gw.is_failed, gw.status()
    (True, 'unhealthy')
"""

# Standard
import asyncio
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

# First-Party
from mcpunified.adapters import build_adapter, SourceAdapter
from mcpunified.config import get_settings, Settings
from mcpunified.models import CollisionPolicy, HealthState, SourceDescriptor, SourceHealth
from mcpunified.registry import load_sources, SourceRegistry
from mcpunified.services.health_service import HealthMonitor
from mcpunified.services.logging_service import logging_service
from mcpunified.services.metrics_service import MetricsService
from mcpunified.services.router_service import AggregatingRouter

logger = logging_service.get_logger(__name__)


class GatewayInstance:
    """Process-wide runtime state of one gateway."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        registry: Optional[SourceRegistry] = None,
        bridges: Optional[Mapping[str, Any]] = None,
        adapters: Optional[Mapping[str, SourceAdapter]] = None,
    ):
        """Assemble a gateway.

        Args:
            settings: Settings (defaults to the environment)
            registry: Source registry (defaults to the configured catalog)
            bridges: In-process bridges for bridge-internal sources
            adapters: Pre-built adapters by source id; missing ones are built from the descriptors
        """
        self.settings = settings or get_settings()
        self.registry = registry if registry is not None else load_sources(self.settings)
        self.bridges: Dict[str, Any] = dict(bridges or {})
        self.adapters: Dict[str, SourceAdapter] = dict(adapters or {})
        for descriptor in self.registry:
            if descriptor.id not in self.adapters:
                self.adapters[descriptor.id] = build_adapter(descriptor, self.settings, self.bridges)

        self.metrics = MetricsService()
        self.health = HealthMonitor(
            self.registry,
            self.adapters,
            interval=self.settings.health_check_interval,
            threshold=self.settings.unhealthy_threshold,
        )
        self.router = AggregatingRouter(
            self.registry,
            self.adapters,
            self.health.state_of,
            policy=CollisionPolicy(self.settings.collision_policy),
            separator=self.settings.namespace_separator,
            metrics=self.metrics,
        )
        self.health.attach_router(self.router)

        self.listeners: Mapping[str, bool] = MappingProxyType({})
        self.started_at: Optional[datetime] = None
        self.initialized = False

    async def initialize(self, start_health_loop: bool = True) -> None:
        """Connect adapters, probe every source once and build the tool index.

        Args:
            start_health_loop: Start periodic probing afterwards
        """
        logger.info(f"Initializing gateway with {len(self.registry)} sources")
        await asyncio.gather(*(adapter.connect() for adapter in self.adapters.values()))
        await self.health.probe_all(refresh=False)
        await self.router.refresh_index()
        if start_health_loop:
            self.health.start()
        self.started_at = datetime.now(timezone.utc)
        self.initialized = True

    async def shutdown(self) -> None:
        """Stop probing and release every adapter."""
        await self.health.stop()
        adapters = list(self.adapters.values())
        results = await asyncio.gather(*(adapter.close() for adapter in adapters), return_exceptions=True)
        for adapter, result in zip(adapters, results):
            if isinstance(result, Exception):
                logger.error(f"Error closing {adapter!r}: {result}")
        self.initialized = False
        logger.info("Gateway shutdown complete")

    async def add_source(self, descriptor: SourceDescriptor, adapter: Optional[SourceAdapter] = None) -> SourceHealth:
        """Register a source at runtime, probe it and merge its tools when healthy.

        Args:
            descriptor: New source
            adapter: Optional pre-built adapter

        Returns:
            The source's health after its first probe

        Raises:
            DuplicateSourceIdError: If the id is taken
        """
        self.registry.register(descriptor)
        adapter = adapter or build_adapter(descriptor, self.settings, self.bridges)
        self.adapters[descriptor.id] = adapter
        await adapter.connect()
        health = await self.health.probe_source(descriptor.id)
        logger.info(f"Added source {descriptor.id}: {health.state.value}")
        return health

    async def refresh(self) -> None:
        """Probe every source and rebuild the whole index."""
        await self.health.probe_all(refresh=False)
        await self.router.refresh_index()

    def set_listener(self, name: str, active: bool) -> None:
        """Record a listener coming up or going down.

        Args:
            name: ``primary`` or ``fallback``
            active: Whether it is serving
        """
        self.listeners = MappingProxyType({**self.listeners, name: active})

    @property
    def is_failed(self) -> bool:
        """No listener is serving.

        Returns:
            True when listeners were started and all are down
        """
        return bool(self.listeners) and not any(self.listeners.values())

    def status(self) -> str:
        """Overall status for ``/health``.

        Returns:
            ``healthy``, ``degraded`` or ``unhealthy``
        """
        if self.is_failed:
            return "unhealthy"
        states = [self.health.state_of(source_id) for source_id in self.registry.ids()]
        if states and all(state == HealthState.UNREACHABLE for state in states):
            return "unhealthy"
        if self.listeners and not self.listeners.get("primary", False):
            return "degraded"
        if any(state != HealthState.HEALTHY for state in states):
            return "degraded"
        return "healthy"

    def sources_summary(self) -> List[Dict[str, Any]]:
        """Per-source health for ``/health``, in registration order.

        Returns:
            List of dicts
        """
        return [self.health.get(source_id).to_wire(source_id) for source_id in self.registry.ids()]

    def source_states(self) -> Dict[str, str]:
        """Health state per source id.

        Returns:
            Mapping of id to state value
        """
        return {source_id: self.health.state_of(source_id).value for source_id in self.registry.ids()}
