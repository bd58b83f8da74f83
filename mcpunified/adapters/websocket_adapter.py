# -*- coding: utf-8 -*-
"""Location: ./mcpunified/adapters/websocket_adapter.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

WebSocket Source Adapter.
Holds one persistent WebSocket per source. Requests are JSON-RPC frames correlated with
their replies by id through a table of pending futures, filled by a single receive task.

Connection lifecycle::

    DISCONNECTED -> CONNECTING -> CONNECTED
          ^                           |
          +------ RECONNECTING <------+   (unexpected close; up to 3 attempts, 2**n s apart)

    any state -> CLOSED                   (close(); terminal)

Calls made while not CONNECTED fail fast with SourceUnavailableError. The health probe
reopens a dropped connection once and then sends a ping.
"""

# Standard
import asyncio
from contextlib import suppress
from enum import Enum
import itertools
import json
from typing import Any, Dict, List, Optional

# Third-Party
import websockets
from websockets.exceptions import ConnectionClosed

# First-Party
from mcpunified.adapters.base import as_gateway_error, parse_tool_list, SourceAdapter, unwrap_rpc_result
from mcpunified.config import Settings
from mcpunified.errors import ProtocolMismatchError, SourceUnavailableError
from mcpunified.models import SourceDescriptor, ToolDescriptor, WebSocketTransportConfig
from mcpunified.services.logging_service import logging_service

logger = logging_service.get_logger(__name__)

DEFAULT_CONNECT_TIMEOUT = 10  # seconds
DEFAULT_MAX_RECONNECT_ATTEMPTS = 3
MAX_RECONNECT_DELAY = 60  # seconds


class ConnectionState(Enum):
    """Connection state enumeration.

    Examples:
        >>> ConnectionState.CONNECTED.value
        'connected'
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


class WebSocketSourceAdapter(SourceAdapter):
    """Adapter for WebSocket sources."""

    def __init__(
        self,
        descriptor: SourceDescriptor,
        settings: Settings,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        max_reconnect_attempts: int = DEFAULT_MAX_RECONNECT_ATTEMPTS,
        reconnect_delay: float = 1.0,
    ):
        """Bind to a WebSocket source.

        Args:
            descriptor: Source with a WebSocketTransportConfig
            settings: Gateway settings
            connect_timeout: Bound on the opening handshake
            max_reconnect_attempts: Attempts after an unexpected close
            reconnect_delay: Base of the exponential reconnect delay
        """
        super().__init__(descriptor, settings)
        self.config: WebSocketTransportConfig = descriptor.transport
        self.connect_timeout = connect_timeout
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self.state = ConnectionState.DISCONNECTED
        self.connection: Optional[Any] = None
        self._receive_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._pending: Dict[int, asyncio.Future] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        """Whether requests can be sent.

        Returns:
            True when CONNECTED
        """
        return self.state == ConnectionState.CONNECTED

    async def connect(self) -> None:
        """Open the socket; a failure leaves the adapter DISCONNECTED for the probe to report."""
        try:
            await self._open()
        except Exception as e:
            logger.warning(f"{self.source_id}: initial WebSocket connect to {self.config.url} failed: {e}")

    async def _open(self) -> None:
        """Open the connection and start the receive task.

        Raises:
            SourceUnavailableError: If the adapter was closed
        """
        async with self._lock:
            if self.state == ConnectionState.CLOSED:
                raise SourceUnavailableError(f"{self.source_id}: adapter is closed")
            if self.connected:
                return
            self.state = ConnectionState.CONNECTING
            logger.info(f"Connecting to WebSocket source {self.source_id}: {self.config.url}")
            try:
                self.connection = await websockets.connect(
                    self.config.url,
                    additional_headers=self.config.headers or None,
                    open_timeout=self.connect_timeout,
                    ping_interval=20,
                    ping_timeout=10,
                )
            except BaseException:
                self.state = ConnectionState.DISCONNECTED
                raise
            self.state = ConnectionState.CONNECTED
            self._receive_task = asyncio.create_task(self._receive_loop(self.connection))

    async def _receive_loop(self, connection: Any) -> None:
        """Route inbound frames to their pending futures until the socket closes.

        Args:
            connection: The socket this task reads
        """
        try:
            async for message in connection:
                self._dispatch(message)
        except ConnectionClosed:
            logger.warning(f"{self.source_id}: WebSocket connection closed")
        except Exception as e:
            logger.error(f"{self.source_id}: WebSocket receive error: {e}")
        finally:
            self._fail_pending(SourceUnavailableError(f"{self.source_id}: connection closed"))
            if self.connection is connection and self.state == ConnectionState.CONNECTED:
                self.state = ConnectionState.DISCONNECTED
                self._reconnect_task = asyncio.create_task(self._reconnect())

    def _dispatch(self, message: Any) -> None:
        """Resolve the future waiting on this reply.

        Args:
            message: Raw frame
        """
        try:
            data = json.loads(message)
        except (TypeError, ValueError):
            logger.warning(f"{self.source_id}: dropping non-JSON frame")
            return
        if not isinstance(data, dict):
            return
        future = self._pending.pop(data.get("id"), None) if isinstance(data.get("id"), int) else None
        if future is None:
            logger.debug(f"{self.source_id}: unsolicited frame {str(data)[:200]}")
            return
        if not future.done():
            future.set_result(data)

    def _fail_pending(self, error: Exception) -> None:
        """Fail every outstanding request.

        Args:
            error: Exception to set on each future
        """
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(error)

    async def _reconnect(self) -> None:
        """Reopen after an unexpected close with exponential backoff."""
        for attempt in range(self.max_reconnect_attempts):
            if self.state == ConnectionState.CLOSED:
                return
            delay = min(self.reconnect_delay * (2**attempt), MAX_RECONNECT_DELAY)
            self.state = ConnectionState.RECONNECTING
            logger.info(f"{self.source_id}: reconnecting in {delay}s (attempt {attempt + 1}/{self.max_reconnect_attempts})")
            await asyncio.sleep(delay)
            if self.state == ConnectionState.CLOSED:
                return
            self.state = ConnectionState.DISCONNECTED
            try:
                await self._open()
                logger.info(f"{self.source_id}: reconnected")
                return
            except Exception as e:
                logger.warning(f"{self.source_id}: reconnect failed: {e}")
        logger.error(f"{self.source_id}: giving up after {self.max_reconnect_attempts} reconnect attempts")

    async def close(self) -> None:
        """Close the socket and stop background tasks."""
        self.state = ConnectionState.CLOSED
        for task in (self._reconnect_task, self._receive_task):
            if task and not task.done():
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
        if self.connection is not None:
            with suppress(Exception):
                await self.connection.close()
        self._fail_pending(SourceUnavailableError(f"{self.source_id}: adapter closed"))

    async def _probe(self) -> None:
        """Reopen if dropped, then ping and wait for the pong."""
        if not self.connected and self.state != ConnectionState.RECONNECTING:
            await self._open()
        if not self.connected:
            raise SourceUnavailableError(f"{self.source_id}: WebSocket is {self.state.value}")
        pong_waiter = await self.connection.ping()
        await pong_waiter

    async def _request(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Send one request and wait for its reply.

        Args:
            method: JSON-RPC method
            params: Params object

        Returns:
            The decoded reply

        Raises:
            SourceUnavailableError: If not connected, on send failure, or on timeout
        """
        if not self.connected:
            raise SourceUnavailableError(f"WebSocket connection to {self.source_id} is not available")

        request_id = next(self._ids)
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self.connection.send(json.dumps({"jsonrpc": "2.0", "id": request_id, "method": method, "params": params}))
            return await self._bounded(future, method)
        except SourceUnavailableError:
            raise
        except Exception as e:
            raise as_gateway_error(self.source_id, e) from e
        finally:
            self._pending.pop(request_id, None)

    async def list_tools(self) -> List[ToolDescriptor]:
        """Send ``tools/list``.

        Returns:
            Tools named as the source names them

        Raises:
            ProtocolMismatchError: If the result is not an object
        """
        result = unwrap_rpc_result(self.source_id, await self._request("tools/list", {}))
        if not isinstance(result, dict):
            raise ProtocolMismatchError(f"{self.source_id}: tools/list result is not an object")
        return parse_tool_list(self.source_id, result.get("tools"))

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Any:
        """Send ``tools/call``.

        Args:
            name: Tool name as known to the source
            arguments: Opaque arguments

        Returns:
            The source's result
        """
        reply = await self._request("tools/call", {"name": name, "arguments": arguments})
        return unwrap_rpc_result(self.source_id, reply, tool_name=name)
