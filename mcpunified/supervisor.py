# -*- coding: utf-8 -*-
"""Location: ./mcpunified/supervisor.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Resilience Supervisor.
Serves one GatewayInstance from a primary and a fallback listener. Each listener socket
is bound before any server starts; a port that cannot be bound is logged and skipped, and
the gateway starts as long as one listener binds. Both listeners share the same app and
therefore the same registry, health map and tool index.

Lifecycle:

1. Bind listener sockets (``GatewayStartupError`` if none bind).
2. Initialize the gateway: connect adapters, probe sources, build the tool index, start
   the health loop.
3. Serve every bound socket with its own uvicorn server.
4. On SIGINT/SIGTERM, stop accepting, let in-flight requests finish within
   ``SHUTDOWN_TIMEOUT`` and close every adapter.

A listener that dies while running is marked inactive while the gateway keeps serving from
the other one, and is restarted on the same port with exponential backoff, up to
``LISTENER_RESTART_ATTEMPTS`` consecutive times. When every listener has used up its
restarts the gateway is failed and the supervisor exits with a non-zero status.
"""

# Standard
import asyncio
from contextlib import contextmanager, suppress
import signal
import socket
import time
from typing import Dict, Iterator, Optional, Set

# Third-Party
import uvicorn

# First-Party
from mcpunified.config import Settings
from mcpunified.errors import GatewayStartupError
from mcpunified.gateway import GatewayInstance
from mcpunified.main import create_app
from mcpunified.services.logging_service import logging_service

logger = logging_service.get_logger(__name__)

UVICORN_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "TRACE"}

# A listener that served this long before dying gets its full restart budget back.
STABLE_UPTIME = 60.0


class ListenerServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the supervisor."""

    @contextmanager
    def capture_signals(self) -> Iterator[None]:
        """Do not capture signals.

        Yields:
            None
        """
        yield

    def install_signal_handlers(self) -> None:
        """Do not install signal handlers."""


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind and listen on a TCP socket.

    Args:
        host: Interface to bind
        port: Port to bind

    Returns:
        Listening socket

    Raises:
        OSError: If the port cannot be bound
    """
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(2048)
    except OSError:
        sock.close()
        raise
    sock.set_inheritable(True)
    return sock


class ResilienceSupervisor:
    """Primary/fallback listener supervisor for one gateway."""

    def __init__(self, gateway: GatewayInstance, settings: Optional[Settings] = None):
        """Create a supervisor.

        Args:
            gateway: Gateway to serve
            settings: Listener settings (defaults to the gateway's)
        """
        self.gateway = gateway
        self.settings = settings or gateway.settings
        self.app = create_app(gateway)
        self.sockets: Dict[str, socket.socket] = {}
        self.servers: Dict[str, ListenerServer] = {}
        self.tasks: Dict[str, asyncio.Task] = {}
        self.ready = asyncio.Event()
        self._stop = asyncio.Event()
        self._stopping = False
        self._given_up: Set[str] = set()

    def bind_listeners(self) -> Dict[str, socket.socket]:
        """Bind every enabled listener, skipping ports that are unavailable.

        Returns:
            Bound sockets by listener name

        Raises:
            GatewayStartupError: If no listener could be bound
        """
        for name, port in self.settings.listener_ports().items():
            try:
                self.sockets[name] = bind_socket(self.settings.host, port)
                logger.info(f"{name.capitalize()} listener bound to {self.settings.host}:{port}")
            except OSError as e:
                logger.error(f"{name.capitalize()} listener could not bind {self.settings.host}:{port}: {e}")
                self.gateway.set_listener(name, False)
        if not self.sockets:
            raise GatewayStartupError("No listener could be bound: " + ", ".join(f"{n}={p}" for n, p in self.settings.listener_ports().items()))
        return self.sockets

    def _make_server(self, port: int) -> ListenerServer:
        """Build one uvicorn server for the shared app.

        Args:
            port: Port the server reports

        Returns:
            Server
        """
        level = self.settings.log_level if self.settings.log_level in UVICORN_LOG_LEVELS else "WARNING"
        config = uvicorn.Config(
            self.app,
            host=self.settings.host,
            port=port,
            log_level=level.lower(),
            lifespan="off",
            timeout_graceful_shutdown=int(self.settings.shutdown_timeout) or None,
        )
        return ListenerServer(config)

    async def _serve(self, name: str, sock: socket.socket) -> None:
        """Run one listener, restarting it on its own port when it dies.

        Args:
            name: Listener name
            sock: Bound socket for the first run
        """
        port = sock.getsockname()[1]
        restarts = 0
        while True:
            server = self._make_server(port)
            self.servers[name] = server
            self.gateway.set_listener(name, True)
            started_at = time.monotonic()
            try:
                await server.serve(sockets=[sock])
            except (Exception, SystemExit) as e:
                logger.error(f"{name.capitalize()} listener crashed: {e}")
            finally:
                self.gateway.set_listener(name, False)

            if self._stopping or self._stop.is_set():
                return
            if time.monotonic() - started_at >= STABLE_UPTIME:
                restarts = 0
            logger.error(f"{name.capitalize()} listener stopped unexpectedly")

            sock = None
            while sock is None and restarts < self.settings.listener_restart_attempts:
                delay = self.settings.listener_restart_delay * (2**restarts)
                restarts += 1
                logger.warning(f"Restarting {name} listener in {delay:.2f}s (attempt {restarts}/{self.settings.listener_restart_attempts})")
                with suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(self._stop.wait(), timeout=delay)
                if self._stop.is_set():
                    return
                try:
                    sock = bind_socket(self.settings.host, port)
                except OSError as e:
                    logger.error(f"{name.capitalize()} listener could not rebind {self.settings.host}:{port}: {e}")
            if sock is None:
                break
            self.sockets[name] = sock

        logger.error(f"{name.capitalize()} listener given up after {restarts} restart(s)")
        self._given_up.add(name)
        if self._given_up >= set(self.tasks):
            logger.critical("All listeners are down; gateway failed")
            self._stop.set()

    def request_shutdown(self) -> None:
        """Ask the supervisor to drain and stop. Safe to call more than once."""
        if not self._stop.is_set():
            logger.info("Shutdown requested")
            self._stop.set()

    def _install_signal_handlers(self) -> None:
        """Route SIGINT/SIGTERM to :meth:`request_shutdown`."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with suppress(NotImplementedError):  # Windows lacks add_signal_handler
                loop.add_signal_handler(sig, self.request_shutdown)

    def _remove_signal_handlers(self) -> None:
        """Undo :meth:`_install_signal_handlers`."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with suppress(NotImplementedError, ValueError):
                loop.remove_signal_handler(sig)

    async def _wait_started(self) -> None:
        """Wait until every server finished starting or exited."""
        while not all(task.done() or (name in self.servers and self.servers[name].started) for name, task in self.tasks.items()):
            await asyncio.sleep(0.05)

    async def _drain(self) -> None:
        """Stop accepting, let in-flight requests finish, then force-cancel stragglers."""
        self._stopping = True
        for server in self.servers.values():
            server.should_exit = True
        pending = [task for task in self.tasks.values() if not task.done()]
        if pending:
            _, still_running = await asyncio.wait(pending, timeout=self.settings.shutdown_timeout + 1)
            for task in still_running:
                task.cancel()
            if still_running:
                logger.warning(f"Cancelled {len(still_running)} listener(s) after the drain window")
                await asyncio.gather(*still_running, return_exceptions=True)

    def _close_sockets(self) -> None:
        """Close every bound socket."""
        for sock in self.sockets.values():
            with suppress(OSError):
                sock.close()
        self.sockets.clear()

    async def run(self, install_signals: bool = True) -> int:
        """Bind, initialize, serve until asked to stop, then drain.

        Args:
            install_signals: Handle SIGINT/SIGTERM

        Returns:
            Exit status: 0 after a requested shutdown, 1 when every listener failed

        Raises:
            GatewayStartupError: If no listener could be bound
        """
        self.bind_listeners()
        try:
            await self.gateway.initialize()
        except BaseException:
            self._close_sockets()
            raise

        for name, sock in list(self.sockets.items()):
            self.tasks[name] = asyncio.create_task(self._serve(name, sock))

        if install_signals:
            self._install_signal_handlers()
        try:
            await self._wait_started()
            self.ready.set()
            logger.info(f"Gateway serving on {', '.join(f'{n}={s.getsockname()[1]}' for n, s in self.sockets.items())} ({self.gateway.status()})")
            await self._stop.wait()
        finally:
            failed = self.gateway.is_failed and not self._stopping
            await self._drain()
            await self.gateway.shutdown()
            self._close_sockets()
            if install_signals:
                self._remove_signal_handlers()
        return 1 if failed else 0


async def serve(settings: Settings) -> int:
    """Build a gateway from settings and supervise it.

    Args:
        settings: Gateway settings

    Returns:
        Exit status
    """
    gateway = GatewayInstance(settings)
    return await ResilienceSupervisor(gateway).run()
