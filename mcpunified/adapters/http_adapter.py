# -*- coding: utf-8 -*-
"""Location: ./mcpunified/adapters/http_adapter.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

HTTP Source Adapter.
Stateless per call: every list/call is one HTTP exchange on a shared ``httpx.AsyncClient``.
Three upstream dialects are understood (see HttpTransportConfig):

- ``jsonrpc``: standard MCP over HTTP; ``tools/list`` and ``tools/call`` POSTed as JSON-RPC.
  Replies may be plain JSON or a single-event ``text/event-stream`` body.
- ``direct``: GET returns ``[...]``, ``{"success": true, "data": [...]}`` or a JSON-RPC
  wrapped ``{"result": {"tools": [...]}}``.
- ``health``: only ``/health`` exists; the source exposes one synthesized ``health_check`` tool.

No call is retried here; a failed call surfaces immediately and the health loop decides
whether the source is demoted.
"""

# Standard
import itertools
import json
from typing import Any, Dict, List, Optional

# Third-Party
import httpx

# First-Party
from mcpunified.adapters.base import as_gateway_error, parse_tool_list, SourceAdapter, unwrap_rpc_result
from mcpunified.config import Settings
from mcpunified.errors import ProtocolMismatchError, SourceUnavailableError, ToolNotFoundError
from mcpunified.models import HttpTransportConfig, SourceDescriptor, ToolDescriptor
from mcpunified.services.logging_service import logging_service

logger = logging_service.get_logger(__name__)

HEALTH_CHECK_TOOL = "health_check"


def _decode_body(response: httpx.Response) -> Any:
    """Decode a JSON or single-event SSE body.

    Args:
        response: Upstream response

    Returns:
        Decoded JSON value

    Raises:
        ValueError: If the body is not JSON

    Examples:
        >>> _decode_body(httpx.Response(200, json={"a": 1}))
        {'a': 1}
        >>> _decode_body(httpx.Response(200, text='event: message\\ndata: {"b": 2}\\n\\n', headers={"content-type": "text/event-stream"}))
        {'b': 2}
    """
    ctype = (response.headers.get("content-type") or "").lower()
    if "event-stream" in ctype:
        data_lines = [line[5:].lstrip() for line in response.text.splitlines() if line.startswith("data:")]
        if not data_lines:
            raise ValueError("event stream carried no data")
        return json.loads(data_lines[-1])
    return response.json()


class HttpSourceAdapter(SourceAdapter):
    """Adapter for HTTP sources."""

    def __init__(self, descriptor: SourceDescriptor, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        """Bind to an HTTP source.

        Args:
            descriptor: Source with an HttpTransportConfig
            settings: Gateway settings
            client: Optional pre-built client (tests inject a MockTransport-backed one)
        """
        super().__init__(descriptor, settings)
        self.config: HttpTransportConfig = descriptor.transport
        self.base_url = self.config.url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=settings.tool_timeout, headers=self.config.headers)
        self._ids = itertools.count(1)

    async def close(self) -> None:
        """Close the HTTP client if this adapter created it."""
        if self._owns_client:
            await self._client.aclose()

    async def _probe(self) -> None:
        """GET the health path; any 2xx is alive.

        Raises:
            SourceUnavailableError: On a non-2xx status
        """
        response = await self._client.get(self.base_url + self.config.health_path, timeout=self.settings.health_check_timeout)
        if not response.is_success:
            raise SourceUnavailableError(f"HTTP {response.status_code} from {self.config.health_path}")

    async def list_tools(self) -> List[ToolDescriptor]:
        """Fetch the catalog in the configured dialect.

        Returns:
            Tools named as the source names them
        """
        fmt = self.config.response_format
        if fmt == "health":
            await self._request("GET", self.config.health_path)
            return [
                ToolDescriptor(
                    name=HEALTH_CHECK_TOOL,
                    source_id=self.source_id,
                    description=f"Health check for {self.descriptor.display_name}",
                    input_schema={"type": "object", "properties": {}},
                )
            ]

        if fmt == "direct":
            body = await self._request("GET", self.config.endpoint)
            return parse_tool_list(self.source_id, self._direct_tools(body))

        result = await self._rpc(self.config.endpoint, "tools/list", {})
        if not isinstance(result, dict):
            raise ProtocolMismatchError(f"{self.source_id}: tools/list result is not an object")
        return parse_tool_list(self.source_id, result.get("tools"))

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Any:
        """Invoke a tool.

        Args:
            name: Tool name as known to the source
            arguments: Opaque arguments

        Returns:
            The source's result

        Raises:
            ToolNotFoundError: For any name other than ``health_check`` on a health-only source
        """
        if self.config.response_format == "health":
            if name != HEALTH_CHECK_TOOL:
                raise ToolNotFoundError(name)
            body = await self._request("GET", self.config.health_path)
            return {"content": [{"type": "text", "text": json.dumps(body)}]}

        endpoint = self.config.call_endpoint if self.config.response_format == "direct" else self.config.endpoint
        return await self._rpc(endpoint, "tools/call", {"name": name, "arguments": arguments}, tool_name=name)

    def _direct_tools(self, body: Any) -> Any:
        """Pick the tool array out of a direct-format body.

        Args:
            body: Decoded GET body

        Returns:
            The tool array

        Raises:
            ProtocolMismatchError: If no known shape matches
        """
        if isinstance(body, list):
            return body
        if isinstance(body, dict):
            if body.get("success") and isinstance(body.get("data"), list):
                return body["data"]
            result = body.get("result")
            if isinstance(result, dict) and isinstance(result.get("tools"), list):
                return result["tools"]
            if isinstance(body.get("tools"), list):
                return body["tools"]
        raise ProtocolMismatchError(f"{self.source_id}: unrecognised tool list format")

    async def _rpc(self, endpoint: str, method: str, params: Dict[str, Any], tool_name: Optional[str] = None) -> Any:
        """POST one JSON-RPC request and unwrap the reply.

        Args:
            endpoint: Path below the base URL
            method: JSON-RPC method
            params: Params object
            tool_name: Set for tools/call so unknown-tool replies map to ToolNotFoundError

        Returns:
            The reply's ``result``
        """
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        body = await self._request("POST", endpoint, json=payload, headers={"Accept": "application/json, text/event-stream"}, allow_error_body=True)
        return unwrap_rpc_result(self.source_id, body, tool_name=tool_name)

    async def _request(self, method: str, endpoint: str, allow_error_body: bool = False, **kwargs: Any) -> Any:
        """One bounded HTTP exchange returning the decoded body.

        Args:
            method: HTTP method
            endpoint: Path below the base URL
            allow_error_body: Decode non-2xx bodies that are JSON (JSON-RPC errors often ride on 4xx/5xx)
            **kwargs: Passed to ``httpx.AsyncClient.request``

        Returns:
            Decoded body

        Raises:
            SourceUnavailableError: On network failure, timeout or an undecodable non-2xx reply
            ProtocolMismatchError: If a 2xx body is not JSON
        """
        url = self.base_url + endpoint
        try:
            response = await self._client.request(method, url, timeout=self.settings.tool_timeout, **kwargs)
        except httpx.TimeoutException as e:
            raise SourceUnavailableError(f"{self.source_id}: {method} {endpoint} timed out after {self.settings.tool_timeout}s") from e
        except httpx.HTTPError as e:
            raise as_gateway_error(self.source_id, e) from e

        if not response.is_success:
            if allow_error_body:
                try:
                    body = _decode_body(response)
                except ValueError:
                    body = None
                if isinstance(body, dict) and "error" in body:
                    return body
            raise SourceUnavailableError(f"{self.source_id}: HTTP {response.status_code} from {endpoint}")

        try:
            return _decode_body(response)
        except ValueError as e:
            raise ProtocolMismatchError(f"{self.source_id}: non-JSON reply from {endpoint}") from e
