# -*- coding: utf-8 -*-
"""Location: ./mcpunified/services/health_service.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Source Health Monitoring.
Health is driven only by probe outcomes, through the pure transition function
:func:`next_health`::

    unknown --ok--> healthy <--ok-- degraded <--ok-- unreachable
    unknown --fail--> unreachable
    healthy --fail--> degraded --fail x threshold--> unreachable

One success resets the failure counter to zero. The monitor keeps the per-source health
map as an immutable snapshot replaced on every probe, and tells the router to evict a
source on demotion to ``unreachable`` or to re-list it on promotion to ``healthy``.
"""

# Standard
import asyncio
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Dict, Mapping, Optional

# First-Party
from mcpunified.adapters.base import SourceAdapter
from mcpunified.models import HealthResult, HealthState, SourceHealth
from mcpunified.registry import SourceRegistry
from mcpunified.services.logging_service import logging_service

logger = logging_service.get_logger(__name__)


def next_health(current: SourceHealth, result: HealthResult, threshold: int = 3, now: Optional[datetime] = None) -> SourceHealth:
    """Compute the health snapshot following one probe.

    Args:
        current: Snapshot before the probe
        result: Probe outcome
        threshold: Consecutive failures that demote a healthy/degraded source to unreachable
        now: Probe timestamp (defaults to the current UTC time)

    Returns:
        New snapshot

    Examples:
        >>> ok, fail = HealthResult(ok=True), HealthResult(ok=False, error="down")
        >>> next_health(SourceHealth(), fail).state.value
        'unreachable'
        >>> h = next_health(SourceHealth(), ok)
        >>> h = next_health(h, fail); h.state.value, h.consecutive_failures
        ('degraded', 1)
        >>> h = next_health(next_health(h, fail), fail); h.state.value, h.consecutive_failures
        ('unreachable', 3)
        >>> h = next_health(h, ok); h.state.value, h.consecutive_failures
        ('healthy', 0)
    """
    checked_at = now or datetime.now(timezone.utc)
    if result.ok:
        return SourceHealth(state=HealthState.HEALTHY, last_checked_at=checked_at, consecutive_failures=0, last_error=None)

    failures = current.consecutive_failures + 1
    if current.state in (HealthState.UNKNOWN, HealthState.UNREACHABLE) or failures >= threshold:
        state = HealthState.UNREACHABLE
    else:
        state = HealthState.DEGRADED
    return SourceHealth(state=state, last_checked_at=checked_at, consecutive_failures=failures, last_error=result.error)


class HealthMonitor:
    """Periodic prober and owner of the source health map."""

    def __init__(self, registry: SourceRegistry, adapters: Mapping[str, SourceAdapter], interval: float = 30.0, threshold: int = 3):
        """Create a monitor.

        Args:
            registry: Sources to probe, in order
            adapters: Adapter per source id
            interval: Seconds between probe rounds
            threshold: Consecutive failures before demotion to unreachable
        """
        self.registry = registry
        self.adapters = adapters
        self.interval = interval
        self.threshold = threshold
        self.router = None
        self._health: Mapping[str, SourceHealth] = MappingProxyType({})
        self._task: Optional[asyncio.Task] = None

    def attach_router(self, router) -> None:
        """Connect the router that reacts to health transitions.

        Args:
            router: AggregatingRouter
        """
        self.router = router

    def snapshot(self) -> Mapping[str, SourceHealth]:
        """Current health map (read-only).

        Returns:
            Health per source id
        """
        return self._health

    def get(self, source_id: str) -> SourceHealth:
        """Health of one source.

        Args:
            source_id: Source id

        Returns:
            Snapshot, ``unknown`` when never probed
        """
        return self._health.get(source_id) or SourceHealth()

    def state_of(self, source_id: str) -> HealthState:
        """Health state of one source.

        Args:
            source_id: Source id

        Returns:
            HealthState
        """
        return self.get(source_id).state

    async def probe_source(self, source_id: str, refresh: bool = True) -> SourceHealth:
        """Probe one source and apply the transition.

        Args:
            source_id: Source to probe
            refresh: React to transitions by evicting/re-listing in the router

        Returns:
            New snapshot
        """
        adapter = self.adapters.get(source_id)
        if adapter is None:
            result = HealthResult(ok=False, error="no adapter")
        else:
            result = await adapter.probe_health()

        previous = self.get(source_id)
        current = next_health(previous, result, self.threshold)
        self._health = MappingProxyType({**self._health, source_id: current})

        if current.state != previous.state:
            log = logger.info if current.state == HealthState.HEALTHY else logger.warning
            log(f"Source {source_id}: {previous.state.value} -> {current.state.value}" + (f" ({current.last_error})" if current.last_error else ""))
            if refresh and self.router is not None:
                if current.state == HealthState.UNREACHABLE:
                    self.router.evict(source_id)
                elif current.state == HealthState.HEALTHY:
                    await self.router.refresh_source(source_id)
        elif refresh and self.router is not None and current.state == HealthState.HEALTHY and not self.router.has_catalog(source_id):
            # Still healthy, but its last listing failed.
            logger.info(f"Source {source_id} is healthy without a tool catalog; re-listing")
            await self.router.refresh_source(source_id)
        return current

    async def probe_all(self, refresh: bool = True) -> Dict[str, SourceHealth]:
        """Probe every registered source concurrently.

        Args:
            refresh: React to transitions in the router

        Returns:
            Health per source id after the round
        """
        source_ids = self.registry.ids()
        results = await asyncio.gather(*(self.probe_source(source_id, refresh) for source_id in source_ids))
        return dict(zip(source_ids, results))

    async def _run(self) -> None:
        """Probe loop; errors are logged and the loop carries on."""
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.probe_all()
            except Exception as e:
                logger.error(f"Error running health checks: {e}", exc_info=True)

    def start(self) -> None:
        """Start the probe loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())
            logger.info(f"Health checks every {self.interval}s (unreachable after {self.threshold} failures)")

    async def stop(self) -> None:
        """Stop the probe loop."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
