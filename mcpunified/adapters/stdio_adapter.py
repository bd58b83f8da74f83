# -*- coding: utf-8 -*-
"""Location: ./mcpunified/adapters/stdio_adapter.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Stdio Source Adapter.
Runs a local MCP server as a child process and talks newline-delimited JSON-RPC over its
stdin/stdout. A single reader task routes replies to waiting requests by id; the child's
stderr is forwarded to the gateway log.

The MCP ``initialize`` handshake is performed on every (re)start. Liveness is the child
still running; the health probe restarts a child that has exited.
"""

# Standard
import asyncio
from contextlib import suppress
import itertools
import json
import os
import shlex
from typing import Any, Dict, List, Optional

# First-Party
from mcpunified import __version__
from mcpunified.adapters.base import as_gateway_error, parse_tool_list, SourceAdapter, unwrap_rpc_result
from mcpunified.config import Settings
from mcpunified.errors import ProtocolMismatchError, SourceUnavailableError
from mcpunified.models import SourceDescriptor, StdioTransportConfig, ToolDescriptor
from mcpunified.services.logging_service import logging_service

logger = logging_service.get_logger(__name__)

STREAM_LIMIT = 16 * 1024 * 1024  # bytes per line
STOP_TIMEOUT = 5  # seconds


class StdioSourceAdapter(SourceAdapter):
    """Adapter for a local MCP server subprocess."""

    def __init__(self, descriptor: SourceDescriptor, settings: Settings):
        """Bind to a stdio source.

        Args:
            descriptor: Source with a StdioTransportConfig
            settings: Gateway settings
        """
        super().__init__(descriptor, settings)
        self.config: StdioTransportConfig = descriptor.transport
        self.process: Optional[asyncio.subprocess.Process] = None
        self.server_info: Dict[str, Any] = {}
        self._reader_task: Optional[asyncio.Task] = None
        self._stderr_task: Optional[asyncio.Task] = None
        self._pending: Dict[int, asyncio.Future] = {}
        self._ids = itertools.count(1)
        self._start_lock = asyncio.Lock()
        self._initialized = False
        self._closed = False

    @property
    def running(self) -> bool:
        """Whether the child is alive.

        Returns:
            True while the process has not exited
        """
        return self.process is not None and self.process.returncode is None

    async def connect(self) -> None:
        """Start the child; a failure is left for the probe to report."""
        try:
            await self.start()
        except Exception as e:
            logger.warning(f"{self.source_id}: failed to start '{self.config.command}': {e}")

    async def start(self) -> None:
        """Spawn the child and run the initialize handshake.

        Raises:
            SourceUnavailableError: If the adapter is closed, the command cannot be run, or the handshake fails
        """
        async with self._start_lock:
            if self._closed:
                raise SourceUnavailableError(f"{self.source_id}: adapter is closed")
            if self.running and self._initialized:
                return
            if self.running:
                await self._stop_process()
            self._initialized = False

            logger.info(f"Starting stdio source {self.source_id}: {self.config.command}")
            env = {**os.environ, **self.config.env} if self.config.env else None
            try:
                self.process = await asyncio.create_subprocess_exec(
                    *shlex.split(self.config.command),
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    env=env,
                    cwd=self.config.cwd,
                    limit=STREAM_LIMIT,
                )
            except OSError as e:
                raise SourceUnavailableError(f"{self.source_id}: cannot start '{self.config.command}': {e}") from e

            self._reader_task = asyncio.create_task(self._read_stdout(self.process))
            self._stderr_task = asyncio.create_task(self._read_stderr(self.process))
            logger.info(f"Stdio source {self.source_id} started (PID: {self.process.pid})")

            try:
                reply = await self._request(
                    "initialize",
                    {
                        "protocolVersion": self.settings.protocol_version,
                        "capabilities": {},
                        "clientInfo": {"name": self.settings.app_name, "version": __version__},
                    },
                )
                result = unwrap_rpc_result(self.source_id, reply)
                self.server_info = result.get("serverInfo", {}) if isinstance(result, dict) else {}
                await self._send({"jsonrpc": "2.0", "method": "notifications/initialized"})
            except Exception as e:
                await self._stop_process()
                raise as_gateway_error(self.source_id, e) from e
            except BaseException:
                # Cancelled mid-handshake: no half-initialized child may survive.
                await self._stop_process()
                raise
            self._initialized = True

    async def _read_stdout(self, process: asyncio.subprocess.Process) -> None:
        """Route replies from the child's stdout.

        Args:
            process: Child whose stdout is read
        """
        try:
            while True:
                line = await process.stdout.readline()
                if not line:
                    break
                message = line.decode("utf-8", errors="replace").strip()
                if not message:
                    continue
                try:
                    data = json.loads(message)
                except ValueError:
                    logger.warning(f"{self.source_id}: non-JSON line on stdout: {message[:200]}")
                    continue
                request_id = data.get("id") if isinstance(data, dict) else None
                future = self._pending.pop(request_id, None) if isinstance(request_id, int) else None
                if future is not None and not future.done():
                    future.set_result(data)
                else:
                    logger.debug(f"{self.source_id}: unsolicited message {message[:200]}")
        except Exception as e:
            logger.error(f"{self.source_id}: error reading stdout: {e}")
        finally:
            self._fail_pending(SourceUnavailableError(f"{self.source_id}: process exited"))

    async def _read_stderr(self, process: asyncio.subprocess.Process) -> None:
        """Forward the child's stderr to the log.

        Args:
            process: Child whose stderr is read
        """
        while True:
            line = await process.stderr.readline()
            if not line:
                break
            logger.debug(f"[{self.source_id}] {line.decode('utf-8', errors='replace').rstrip()}")

    def _fail_pending(self, error: Exception) -> None:
        """Fail every outstanding request.

        Args:
            error: Exception to set on each future
        """
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(error)

    async def _send(self, message: Dict[str, Any]) -> None:
        """Write one JSON line to the child.

        Args:
            message: JSON-RPC message

        Raises:
            SourceUnavailableError: If the child is not running
        """
        if not self.running or self.process.stdin is None:
            raise SourceUnavailableError(f"{self.source_id}: process not running")
        self.process.stdin.write((json.dumps(message) + "\n").encode("utf-8"))
        await self.process.stdin.drain()

    async def _request(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Send one request and wait for its reply under ``tool_timeout``.

        Args:
            method: JSON-RPC method
            params: Params object

        Returns:
            The decoded reply
        """
        request_id = next(self._ids)
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._send({"jsonrpc": "2.0", "id": request_id, "method": method, "params": params})
            return await self._bounded(future, method)
        except SourceUnavailableError:
            raise
        except Exception as e:
            raise as_gateway_error(self.source_id, e) from e
        finally:
            self._pending.pop(request_id, None)

    async def _probe(self) -> None:
        """Restart the child if it has exited or never finished the handshake."""
        if not (self.running and self._initialized):
            if self.process is not None and not self.running:
                logger.warning(f"{self.source_id}: process exited with code {self.process.returncode}; restarting")
            await self.start()

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

    async def close(self) -> None:
        """Stop the child for good."""
        self._closed = True
        await self._stop_process()

    async def _stop_process(self) -> None:
        """Terminate the child, killing it if it does not exit within STOP_TIMEOUT."""
        process = self.process
        self._initialized = False
        if process is None:
            return

        if process.returncode is None:
            logger.info(f"Stopping stdio source {self.source_id} (PID: {process.pid})")
            if process.stdin is not None:
                with suppress(Exception):
                    process.stdin.close()
            with suppress(ProcessLookupError):
                process.terminate()
            with suppress(asyncio.TimeoutError):
                await asyncio.wait_for(process.wait(), timeout=STOP_TIMEOUT)

            # Force kill if needed
            if process.returncode is None:
                logger.warning(f"Force killing stdio source {self.source_id}")
                with suppress(ProcessLookupError):
                    process.kill()
                await process.wait()

        for task in (self._reader_task, self._stderr_task):
            if task and not task.done():
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
        self._fail_pending(SourceUnavailableError(f"{self.source_id}: process stopped"))
