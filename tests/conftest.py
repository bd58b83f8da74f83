# -*- coding: utf-8 -*-
"""Location: ./tests/conftest.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Shared fixtures: isolated settings, in-memory fake sources and gateway builders.
"""

# Standard
import asyncio
import socket
from typing import Any, Dict, Iterable, List, Optional

# Third-Party
import pytest

# First-Party
from mcpunified.adapters.base import parse_tool_list, SourceAdapter
from mcpunified.config import Settings
from mcpunified.errors import SourceUnavailableError, ToolNotFoundError
from mcpunified.gateway import GatewayInstance
from mcpunified.models import SourceDescriptor
from mcpunified.registry import SourceRegistry


class FakeAdapter(SourceAdapter):
    """Scriptable in-memory source."""

    def __init__(self, descriptor: SourceDescriptor, settings: Settings, tools: Iterable[Any] = (), healthy: bool = True):
        super().__init__(descriptor, settings)
        self.tools: List[Any] = [{"name": t} if isinstance(t, str) else t for t in tools]
        self.healthy = healthy
        self.list_error: Optional[Exception] = None
        self.call_error: Optional[Exception] = None
        self.call_delay = 0.0
        self.events: List[str] = []
        self.calls: List[tuple] = []
        self.list_calls = 0
        self.connected = False
        self.closed = False

    async def connect(self) -> None:
        self.connected = True

    async def close(self) -> None:
        self.closed = True
        self.events.append("close")

    async def _probe(self) -> None:
        if not self.healthy:
            raise SourceUnavailableError(f"{self.source_id}: down")

    async def list_tools(self):
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        return parse_tool_list(self.source_id, self.tools)

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Any:
        self.calls.append((name, arguments))
        if self.call_delay:
            await asyncio.sleep(self.call_delay)
        self.events.append(f"call:{name}")
        if self.call_error is not None:
            raise self.call_error
        if name not in {t["name"] for t in self.tools}:
            raise ToolNotFoundError(name)
        return {"content": [{"type": "text", "text": f"{self.source_id}:{name}"}], "isError": False}


def fake_descriptor(source_id: str, categories: Iterable[str] = ()) -> SourceDescriptor:
    """Descriptor for a fake source."""
    return SourceDescriptor(id=source_id, transport={"kind": "bridge-internal", "bridge": source_id}, categories=list(categories))


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment, with short timeouts and no built-in sources."""
    return Settings(
        _env_file=None,
        use_default_sources=False,
        health_check_timeout=1.0,
        tool_timeout=2.0,
        health_check_interval=3600,
        master_api_key="admin-key",
    )


@pytest.fixture
def make_gateway(settings):
    """Build a gateway from ``{source_id: FakeAdapter kwargs}`` in registration order."""

    def _make(sources: Optional[Dict[str, Dict[str, Any]]] = None, gateway_settings: Optional[Settings] = None) -> GatewayInstance:
        cfg = gateway_settings or settings
        registry = SourceRegistry()
        adapters = {}
        for source_id, kwargs in (sources or {}).items():
            descriptor = fake_descriptor(source_id)
            registry.register(descriptor)
            adapters[source_id] = FakeAdapter(descriptor, cfg, **kwargs)
        return GatewayInstance(cfg, registry=registry, adapters=adapters)

    return _make


@pytest.fixture
def free_port():
    """Return a function yielding a currently unused TCP port."""

    def _port() -> int:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(("127.0.0.1", 0))
            return s.getsockname()[1]

    return _port


@pytest.fixture
def make_source(settings):
    """Build a ``(descriptor, FakeAdapter)`` pair."""

    def _make(source_id: str, **kwargs: Any):
        descriptor = fake_descriptor(source_id)
        return descriptor, FakeAdapter(descriptor, settings, **kwargs)

    return _make
