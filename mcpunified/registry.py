# -*- coding: utf-8 -*-
"""Location: ./mcpunified/registry.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Source Registry.
In-memory catalog of tool sources, kept in registration order. Registration order is
meaningful: it decides which source wins a tool-name collision.

The catalog is loaded at startup from ``SOURCES_FILE`` (YAML or JSON) or, failing that,
from the built-in default catalog.

Examples:
    >>> registry = SourceRegistry()
    >>> registry.register(SourceDescriptor(id="a", transport={"kind": "bridge-internal", "bridge": "a"}, categories=["db"]))
    >>> registry.register(SourceDescriptor(id="b", transport={"kind": "bridge-internal", "bridge": "b"}, categories=["db", "ai"]))
    >>> [s.id for s in registry.filter_by_category("db")]
    ['a', 'b']
    >>> "a" in registry, len(registry)
    (True, 2)
"""

# Standard
import json
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

# Third-Party
import yaml

# First-Party
from mcpunified.config import Settings
from mcpunified.errors import DuplicateSourceIdError
from mcpunified.models import SourceDescriptor
from mcpunified.services.logging_service import logging_service

logger = logging_service.get_logger(__name__)


class SourceRegistry:
    """Ordered catalog of source descriptors."""

    def __init__(self, descriptors: Optional[List[SourceDescriptor]] = None):
        """Create a registry, optionally pre-populated.

        Args:
            descriptors: Descriptors to register, in order

        Raises:
            DuplicateSourceIdError: If two descriptors share an id
        """
        self._sources: Dict[str, SourceDescriptor] = {}
        for descriptor in descriptors or []:
            self.register(descriptor)

    def register(self, descriptor: SourceDescriptor) -> None:
        """Add a source to the end of the catalog.

        Args:
            descriptor: Source to add

        Raises:
            DuplicateSourceIdError: If the id is already registered
        """
        if descriptor.id in self._sources:
            raise DuplicateSourceIdError(descriptor.id)
        self._sources[descriptor.id] = descriptor
        logger.debug(f"Registered source {descriptor.id} ({descriptor.transport_kind.value} {descriptor.address})")

    def list(self) -> List[SourceDescriptor]:
        """All descriptors in registration order.

        Returns:
            List of descriptors
        """
        return list(self._sources.values())

    def filter_by_category(self, tag: str) -> List[SourceDescriptor]:
        """Descriptors tagged with ``tag``, in registration order.

        Args:
            tag: Category tag

        Returns:
            Matching descriptors
        """
        return [d for d in self._sources.values() if tag in d.categories]

    def get(self, source_id: str) -> Optional[SourceDescriptor]:
        """Look up a descriptor.

        Args:
            source_id: Source id

        Returns:
            Descriptor or None
        """
        return self._sources.get(source_id)

    def ids(self) -> List[str]:
        """Registered ids in order.

        Returns:
            List of ids
        """
        return list(self._sources)

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._sources

    def __len__(self) -> int:
        return len(self._sources)

    def __iter__(self) -> Iterator[SourceDescriptor]:
        return iter(self.list())


def default_sources(settings: Settings) -> List[SourceDescriptor]:
    """Built-in catalog for a standard deployment.

    The core source is reached over HTTP unless ``CORE_COMMAND`` asks for a local
    stdio process instead.

    Args:
        settings: Gateway settings supplying per-source addresses

    Returns:
        Descriptors in registration order

    Examples:
        >>> from mcpunified.config import Settings
        >>> [s.id for s in default_sources(Settings(_env_file=None))]
        ['core', 'onasis-core', 'quick-auth', 'context7']
        >>> default_sources(Settings(_env_file=None, core_command="mcp-core --stdio"))[0].transport.kind
        'stdio'
    """
    if settings.core_command:
        core_transport: Dict[str, Any] = {"kind": "stdio", "command": settings.core_command}
    else:
        core_transport = {"kind": "http", "url": settings.core_url, "endpoint": "/mcp"}

    raw = [
        {
            "id": "core",
            "display_name": "Core MCP Server",
            "transport": core_transport,
            "categories": ["memory", "api-keys", "system", "business", "infrastructure"],
            "tool_count_hint": 18,
        },
        {
            "id": "onasis-core",
            "display_name": "Onasis-CORE Enhanced MCP",
            "transport": {"kind": "websocket", "url": settings.onasis_core_ws_url},
            "categories": ["ai-orchestration", "memory", "enhanced"],
            "tool_count_hint": "17+",
        },
        {
            "id": "quick-auth",
            "display_name": "Quick Auth Service",
            "transport": {"kind": "http", "url": settings.quick_auth_url, "response_format": "health"},
            "categories": ["authentication", "security"],
            "tool_count_hint": 1,
        },
        {
            "id": "context7",
            "display_name": "Context7 Documentation",
            "transport": {"kind": "http", "url": settings.context7_url, "endpoint": "/mcp"},
            "categories": ["documentation", "libraries", "reference"],
            "tool_count_hint": 2,
        },
    ]
    return [SourceDescriptor.model_validate(item) for item in raw]


def read_sources_file(path: Path) -> List[SourceDescriptor]:
    """Parse a YAML or JSON source catalog.

    The document is either a list of sources or a mapping with a ``sources`` list.

    Args:
        path: Catalog file

    Returns:
        Descriptors in file order

    Raises:
        ValueError: If the document has neither shape
    """
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        document = json.loads(text)
    else:
        document = yaml.safe_load(text)

    if isinstance(document, dict):
        document = document.get("sources")
    if not isinstance(document, list):
        raise ValueError(f"{path}: expected a list of sources or a 'sources' list")
    return [SourceDescriptor.model_validate(item) for item in document]


def load_sources(settings: Settings) -> SourceRegistry:
    """Build the startup registry.

    Args:
        settings: Gateway settings

    Returns:
        Populated registry (possibly empty)
    """
    if settings.sources_file:
        descriptors = read_sources_file(Path(settings.sources_file))
        logger.info(f"Loaded {len(descriptors)} sources from {settings.sources_file}")
    elif settings.use_default_sources:
        descriptors = default_sources(settings)
        logger.info(f"Using built-in catalog of {len(descriptors)} sources")
    else:
        descriptors = []
        logger.warning("No sources configured; the gateway will start with an empty tool index")
    return SourceRegistry(descriptors)
