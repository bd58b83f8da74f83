# -*- coding: utf-8 -*-
"""Location: ./mcpunified/models.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

MCP Unified Gateway Data Models.
Pydantic models describing tool sources, their health and the tools they expose:

- SourceDescriptor: identity, transport and category tags of one upstream source.
  The transport is a closed union of per-kind configurations selected by ``kind``.
- SourceHealth: immutable snapshot of a source's probe history.
- HealthResult: outcome of a single probe.
- ToolDescriptor: one tool in the merged namespace, with a back-reference to its source.

Examples:
    >>> src = SourceDescriptor.model_validate({"id": "core", "transport": {"kind": "http", "url": "http://localhost:3001"}})
    >>> src.display_name, src.transport_kind.value, src.address
    ('core', 'http', 'http://localhost:3001/mcp')
    >>> SourceHealth().state.value
    'unknown'
"""

# Standard
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Tuple, Union

# Third-Party
from pydantic import BaseModel, ConfigDict, Field, model_validator


class TransportKind(str, Enum):
    """Transport used to reach a tool source."""

    STDIO = "stdio"
    HTTP = "http"
    WEBSOCKET = "websocket"
    BRIDGE = "bridge-internal"


class HealthState(str, Enum):
    """Health of a source as seen by the probe loop.

    Examples:
        >>> HealthState("degraded") is HealthState.DEGRADED
        True
    """

    UNKNOWN = "unknown"
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNREACHABLE = "unreachable"


class CollisionPolicy(str, Enum):
    """How duplicate tool names from different sources are merged."""

    FIRST_WINS = "first_wins"
    NAMESPACED = "namespaced"


class StdioTransportConfig(BaseModel):
    """Child process speaking newline-delimited JSON-RPC on stdin/stdout."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["stdio"] = "stdio"
    command: str = Field(..., min_length=1)
    env: Dict[str, str] = Field(default_factory=dict)
    cwd: Optional[str] = None


class HttpTransportConfig(BaseModel):
    """Plain HTTP source.

    ``response_format`` selects the wire dialect:

    - ``jsonrpc``: POST JSON-RPC envelopes to ``url + endpoint``.
    - ``direct``: GET a plain tool list from ``url + endpoint``; calls are JSON-RPC POSTs to ``url + call_endpoint``.
    - ``health``: the source only has a health endpoint; a single ``health_check`` tool is synthesized.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    kind: Literal["http"] = "http"
    url: str = Field(..., min_length=1)
    endpoint: str = "/mcp"
    response_format: Literal["jsonrpc", "direct", "health"] = Field(default="jsonrpc", alias="responseFormat")
    call_endpoint: str = Field(default="/mcp", alias="callEndpoint")
    health_path: str = Field(default="/health", alias="healthPath")
    headers: Dict[str, str] = Field(default_factory=dict)


class WebSocketTransportConfig(BaseModel):
    """Persistent WebSocket carrying JSON-RPC frames."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["websocket"] = "websocket"
    url: str = Field(..., min_length=1)
    headers: Dict[str, str] = Field(default_factory=dict)


class BridgeTransportConfig(BaseModel):
    """In-process bridge, looked up by identifier or ``module:factory`` import path."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["bridge-internal"] = "bridge-internal"
    bridge: str = Field(..., min_length=1)


TransportConfig = Annotated[
    Union[StdioTransportConfig, HttpTransportConfig, WebSocketTransportConfig, BridgeTransportConfig],
    Field(discriminator="kind"),
]


class SourceDescriptor(BaseModel):
    """A registered tool source. Immutable once built.

    Examples:
        >>> d = SourceDescriptor(id="mem", transport={"kind": "bridge-internal", "bridge": "memory"}, categories=["memory", "ai"])
        >>> d.categories
        ('memory', 'ai')
        >>> d.address
        'memory'
        >>> d.to_wire()["transport"]
        'bridge-internal'
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., min_length=1)
    display_name: str = Field(default="", alias="displayName")
    transport: TransportConfig
    categories: Tuple[str, ...] = ()
    tool_count_hint: Optional[Union[int, str]] = Field(default=None, alias="toolCountHint")

    @model_validator(mode="before")
    @classmethod
    def _default_display_name(cls, data: Any) -> Any:
        """Fall back to the id when no display name is given.

        Args:
            data: Raw input

        Returns:
            Input with a display name filled in
        """
        if isinstance(data, dict) and not (data.get("display_name") or data.get("displayName")):
            data = {**data, "display_name": data.get("id", "")}
            data.pop("displayName", None)
        return data

    @property
    def transport_kind(self) -> TransportKind:
        """Transport enum for this source.

        Returns:
            TransportKind
        """
        return TransportKind(self.transport.kind)

    @property
    def address(self) -> str:
        """Human readable address: URL, command line or bridge identifier.

        Returns:
            Address string
        """
        transport = self.transport
        if isinstance(transport, HttpTransportConfig):
            return transport.url.rstrip("/") + transport.endpoint
        if isinstance(transport, WebSocketTransportConfig):
            return transport.url
        if isinstance(transport, StdioTransportConfig):
            return transport.command
        return transport.bridge

    def to_wire(self) -> Dict[str, Any]:
        """Serialise for the admin API.

        Returns:
            JSON-friendly dict
        """
        return {
            "id": self.id,
            "displayName": self.display_name,
            "transport": self.transport.kind,
            "address": self.address,
            "categories": list(self.categories),
            "toolCountHint": self.tool_count_hint,
        }


class SourceHealth(BaseModel):
    """Snapshot of one source's health. A new snapshot replaces the old one on every probe."""

    model_config = ConfigDict(frozen=True)

    state: HealthState = HealthState.UNKNOWN
    last_checked_at: Optional[datetime] = None
    consecutive_failures: int = 0
    last_error: Optional[str] = None

    def to_wire(self, source_id: str) -> Dict[str, Any]:
        """Serialise for ``/health``.

        Args:
            source_id: Owning source

        Returns:
            JSON-friendly dict
        """
        return {
            "id": source_id,
            "state": self.state.value,
            "lastCheckedAt": self.last_checked_at.isoformat() if self.last_checked_at else None,
            "consecutiveFailures": self.consecutive_failures,
            "lastError": self.last_error,
        }


class HealthResult(BaseModel):
    """Outcome of a single health probe."""

    ok: bool
    error: Optional[str] = None
    latency_ms: Optional[float] = None


class ToolDescriptor(BaseModel):
    """A tool in the merged namespace.

    ``name`` is what clients call; ``original_name`` is the name the owning source knows it by.
    They differ only under the namespaced collision policy.

    Examples:
        >>> t = ToolDescriptor(name="echo", source_id="a", input_schema={"type": "object"})
        >>> t.original_name
        'echo'
        >>> t.to_wire()
        {'name': 'echo', 'description': '', 'inputSchema': {'type': 'object'}, '_source': 'a'}
        >>> t.renamed("a_echo").original_name
        'echo'
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    source_id: str
    original_name: str = ""
    description: str = ""
    input_schema: Dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})

    @model_validator(mode="before")
    @classmethod
    def _default_original_name(cls, data: Any) -> Any:
        """Original name defaults to the exposed name.

        Args:
            data: Raw input

        Returns:
            Input with ``original_name`` set
        """
        if isinstance(data, dict) and not data.get("original_name"):
            data = {**data, "original_name": data.get("name", "")}
        return data

    def renamed(self, name: str) -> "ToolDescriptor":
        """Copy of this tool exposed under another name.

        Args:
            name: New merged-namespace name

        Returns:
            New ToolDescriptor
        """
        return self.model_copy(update={"name": name})

    def to_wire(self) -> Dict[str, Any]:
        """MCP tool object with a ``_source`` attribution.

        Returns:
            JSON-friendly dict
        """
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
            "_source": self.source_id,
        }
