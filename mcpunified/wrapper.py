# -*- coding: utf-8 -*-
"""Location: ./mcpunified/wrapper.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Keval Mahajan

MCP Unified Gateway Wrapper.
MCP Client (stdio) <-> MCP Unified Gateway (HTTP)

Lets stdio-only MCP clients use the gateway. Every line read from stdin is one JSON-RPC
message; it is POSTed to the gateway's ``/mcp`` endpoint and the response body is written
back to stdout as one line.

- Notifications (methods under ``notifications/``) are dropped without output.
- Lines that are not JSON (including invalid UTF-8) are answered locally with a -32603
  error and a ``null`` id.
- Transport failures and gateway replies that are not JSON-RPC envelopes are answered with
  a -32603 error carrying the request id.
- All JSON-RPC traffic is written to stdout; logs go to stderr only.
- On stdin EOF or SIGINT/SIGTERM, in-flight forwards are drained for up to
  ``--drain-timeout`` seconds and the process exits 0.

Environment Variables
---------------------
- **MCP_SERVER_URL** (or `--url`): Gateway endpoint (default: http://localhost:7777/mcp).
- **MCP_API_KEY** (or `--api-key`): Value of the X-API-Key header.
- **MCP_TOOL_CALL_TIMEOUT** (or `--timeout`): Response timeout in seconds (default: 60).
- **MCP_WRAPPER_LOG_LEVEL** (or `--log-level`): Logging level, or OFF to disable.
- **CONCURRENCY**: Max concurrent forwards (default: 10).
- **RETRY_MAX_ATTEMPTS** (or `--retries`): Attempts per request while the gateway is unreachable;
  backoff follows the other ``RETRY_*`` settings.

Example usage:
--------------
    $ export MCP_SERVER_URL='http://localhost:7777/mcp'
    $ export MCP_API_KEY='secret'
    $ python3 -m mcpunified.wrapper --log-level DEBUG
"""

# Future
from __future__ import annotations

# Standard
import argparse
import asyncio
from contextlib import suppress
from dataclasses import dataclass
import errno
import json
import logging
import os
import signal
import sys
from typing import Any, IO, List, Optional, TextIO

# Third-Party
import httpx

# First-Party
from mcpunified.config import settings as gateway_settings
from mcpunified.utils.retry_manager import ResilientHttpClient
from mcpunified.validation.jsonrpc import JSONRPCError, validate_response

# -----------------------
# Configuration Defaults
# -----------------------
DEFAULT_SERVER_URL = "http://localhost:7777/mcp"
DEFAULT_CONCURRENCY = int(os.environ.get("CONCURRENCY", "10"))
DEFAULT_CONNECT_TIMEOUT = 15
DEFAULT_RESPONSE_TIMEOUT = float(os.environ.get("MCP_TOOL_CALL_TIMEOUT", "60"))
DEFAULT_DRAIN_TIMEOUT = 5.0

JSONRPC_INTERNAL_ERROR = -32603
NOTIFICATION_PREFIX = "notifications/"

# Global logger
logger = logging.getLogger("mcpunified.wrapper")
logger.addHandler(logging.StreamHandler(sys.stderr))
logger.propagate = False
logger.disabled = True  # default: disabled

# Shutdown flag
_shutdown = asyncio.Event()


def _mark_shutdown() -> None:
    """Mark the shutdown flag: stdin closed, stdout failed or a signal was caught.

    Examples:
        >>> _mark_shutdown()
        >>> shutting_down()
        True
        >>> _ = _shutdown.clear()
    """
    if not _shutdown.is_set():
        _shutdown.set()


def shutting_down() -> bool:
    """Check whether the wrapper is shutting down.

    Returns:
        bool: True if shutdown has been triggered, False otherwise.

    Examples:
        >>> shutting_down()
        False
    """
    return _shutdown.is_set()


# -----------------------
# Utilities
# -----------------------
def setup_logging(level: Optional[str]) -> None:
    """Configure logging for the wrapper.

    Args:
        level: Logging level (e.g. "INFO", "DEBUG"), or OFF/None to disable.

    Examples:
        >>> setup_logging("DEBUG")
        >>> logger.disabled
        False
        >>> setup_logging("OFF")
        >>> logger.disabled
        True
    """
    if not level:
        logger.disabled = True
        return

    log_level = level.strip().upper()
    if log_level in {"OFF", "NONE", "DISABLE", "FALSE", "0"}:
        logger.disabled = True
        return

    logger.setLevel(getattr(logging, log_level, logging.INFO))
    formatter = logging.Formatter("%(asctime)s %(levelname)-8s %(name)s: %(message)s")
    for handler in logger.handlers:
        handler.setFormatter(formatter)
    logger.disabled = False


def send_to_stdout(obj: Any, stream: Optional[TextIO] = None) -> None:
    """Write one JSON line to stdout.

    Args:
        obj: JSON-serializable object
        stream: Output stream (defaults to ``sys.stdout``)

    Notes:
        A broken pipe triggers shutdown.
    """
    out = stream or sys.stdout
    line = json.dumps(obj, ensure_ascii=False)
    try:
        out.write(line + "\n")
        out.flush()
    except OSError as e:
        if e.errno not in (errno.EPIPE, errno.EINVAL):
            logger.error("stdout write failed: %s", e)
        _mark_shutdown()


def make_error(message: str, request_id: Any = None, code: int = JSONRPC_INTERNAL_ERROR, data: Any = None) -> dict:
    """Construct a JSON-RPC error response.

    Args:
        message: Error message.
        request_id: Id of the failed request (None when unknown).
        code: JSON-RPC error code (default -32603).
        data: Optional extra error data.

    Returns:
        dict: JSON-RPC error object.

    Examples:
        >>> make_error("Gateway unreachable", 7)
        {'jsonrpc': '2.0', 'id': 7, 'error': {'code': -32603, 'message': 'Gateway unreachable'}}
        >>> make_error("Oops", data={"info": 1})["error"]["data"]
        {'info': 1}
    """
    err: dict[str, Any] = {
        "jsonrpc": "2.0",
        "id": request_id,
        "error": {"code": code, "message": message},
    }
    if data is not None:
        err["error"]["data"] = data
    return err


def recover_id(line: str) -> Any:
    """Best-effort extraction of the request id from a raw line.

    Args:
        line: Raw stdin line

    Returns:
        The id when the line is a JSON object carrying a string/int id, else None

    Examples:
        >>> recover_id('{"jsonrpc": "2.0", "id": 3, "method": "ping"}')
        3
        >>> recover_id('{"id": "abc"}')
        'abc'
        >>> recover_id('not json') is None
        True
    """
    try:
        obj = json.loads(line)
    except ValueError:
        return None
    if isinstance(obj, dict):
        request_id = obj.get("id")
        if isinstance(request_id, (str, int)) and not isinstance(request_id, bool):
            return request_id
    return None


def is_notification_message(obj: Any) -> bool:
    """Whether a decoded message is a notification that must not be forwarded.

    Args:
        obj: Decoded stdin line

    Returns:
        True for JSON objects whose method starts with ``notifications/``

    Examples:
        >>> is_notification_message({"jsonrpc": "2.0", "method": "notifications/initialized"})
        True
        >>> is_notification_message({"jsonrpc": "2.0", "id": 1, "method": "ping"})
        False
        >>> is_notification_message(["garbage"])
        False
    """
    return isinstance(obj, dict) and isinstance(obj.get("method"), str) and obj["method"].startswith(NOTIFICATION_PREFIX)


# -----------------------
# Main loop & CLI
# -----------------------
@dataclass
class Settings:
    """Bridge configuration settings.

    Args:
        server_url: Gateway /mcp URL
        api_key: X-API-Key header value (optional)
        connect_timeout: HTTP connect timeout in seconds
        response_timeout: Max response wait in seconds
        concurrency: Max concurrent forwards
        drain_timeout: Seconds to let in-flight forwards finish on shutdown
        log_level: Logging verbosity
        retries: Attempts per forward when the gateway cannot be reached

    Examples:
        >>> s = Settings("http://x/mcp", "k", 5, 10, 2)
        >>> s.server_url, s.concurrency, s.drain_timeout
        ('http://x/mcp', 2, 5.0)
    """

    server_url: str = DEFAULT_SERVER_URL
    api_key: Optional[str] = None
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    response_timeout: float = DEFAULT_RESPONSE_TIMEOUT
    concurrency: int = DEFAULT_CONCURRENCY
    drain_timeout: float = DEFAULT_DRAIN_TIMEOUT
    log_level: Optional[str] = None
    retries: int = gateway_settings.retry_max_attempts


def build_client(settings: Settings) -> ResilientHttpClient:
    """Resilient client configured for the gateway.

    Backoff delays come from the ``RETRY_*`` settings; the attempt count from ``--retries``.

    Args:
        settings: Bridge settings

    Returns:
        ResilientHttpClient

    Examples:
        >>> build_client(Settings(retries=2)).max_retries
        2
    """
    httpx_timeout = httpx.Timeout(
        connect=settings.connect_timeout,
        read=settings.response_timeout,
        write=settings.response_timeout,
        pool=settings.response_timeout,
    )
    return ResilientHttpClient(max_retries=settings.retries, client_args={"timeout": httpx_timeout})


async def forward_line(client: ResilientHttpClient, settings: Settings, line: str, stream: Optional[TextIO] = None) -> None:
    """Forward one stdin line to the gateway and write the answer.

    Lines that are not JSON are answered locally with -32603 and a null id. Gateway replies
    that are not JSON-RPC envelopes (an HTTP 401 body, a proxy error page) are wrapped in a
    -32603 error carrying the request id.

    Args:
        client: Resilient HTTP client
        settings: Bridge settings
        line: Raw JSON-RPC line
        stream: Output stream (defaults to ``sys.stdout``)
    """
    try:
        message = json.loads(line)
    except ValueError as e:
        logger.warning("Unparseable stdin line: %s", e)
        send_to_stdout(make_error(f"Parse error: {e}"), stream)
        return

    if is_notification_message(message):
        logger.debug("Dropping notification: %s", line)
        return
    request_id = recover_id(line)

    headers = {"Content-Type": "application/json; charset=utf-8", "Accept": "application/json"}
    if settings.api_key:
        headers["X-API-Key"] = settings.api_key

    try:
        resp = await client.post(settings.server_url, json=message, headers=headers)
    except httpx.HTTPError as e:
        logger.warning("Forward failed: %s", e)
        send_to_stdout(make_error(f"Gateway request failed: {str(e) or type(e).__name__}", request_id), stream)
        return

    logger.debug("HTTP %s from %s", resp.status_code, settings.server_url)
    body = resp.text.strip()
    if resp.status_code == 204 or not body:
        return
    try:
        payload = json.loads(body)
    except ValueError:
        send_to_stdout(make_error(f"Invalid response from gateway (HTTP {resp.status_code})", request_id, data=body[:500]), stream)
        return
    try:
        validate_response(payload)
    except JSONRPCError as e:
        logger.warning("Gateway returned HTTP %s without a JSON-RPC envelope: %s", resp.status_code, e)
        send_to_stdout(make_error(f"Gateway returned HTTP {resp.status_code}", request_id, data=payload), stream)
        return
    send_to_stdout(payload, stream)


async def stdin_reader(queue: "asyncio.Queue[Optional[str]]", stream: Optional[IO[Any]] = None) -> None:
    """Push stripped stdin lines into a queue; None marks EOF.

    Reads the binary buffer when the stream has one and decodes each line on its own, so
    invalid UTF-8 spoils only that line. Any read failure also ends the stream with None.

    Args:
        queue: Target queue
        stream: Input stream (defaults to ``sys.stdin``)
    """
    source = stream or sys.stdin
    reader = getattr(source, "buffer", source)
    try:
        while True:
            raw = await asyncio.to_thread(reader.readline)
            if not raw:
                break
            line = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
            line = line.strip()
            if line:
                await queue.put(line)
    except (OSError, ValueError) as e:
        logger.error("stdin read failed: %s", e)
    finally:
        queue.put_nowait(None)


async def main_async(settings: Settings, stdin: Optional[IO[Any]] = None, stdout: Optional[TextIO] = None, client: Optional[ResilientHttpClient] = None) -> None:
    """Read stdin lines and forward them concurrently until EOF or shutdown.

    Args:
        settings: Bridge settings
        stdin: Input stream (defaults to ``sys.stdin``)
        stdout: Output stream (defaults to ``sys.stdout``)
        client: Pre-built client (defaults to :func:`build_client`)
    """
    global _shutdown  # pylint: disable=global-statement
    _shutdown = asyncio.Event()
    queue: "asyncio.Queue[Optional[str]]" = asyncio.Queue()
    reader_task = asyncio.create_task(stdin_reader(queue, stdin))
    sem = asyncio.Semaphore(settings.concurrency)
    resilient = client or build_client(settings)
    tasks: set[asyncio.Task[None]] = set()

    async def _worker(line: str) -> None:
        """Forward one line under the concurrency limit.

        Args:
            line: Raw JSON-RPC line
        """
        async with sem:
            await forward_line(resilient, settings, line, stdout)

    try:
        while not shutting_down():
            get_task = asyncio.ensure_future(queue.get())
            stop_task = asyncio.ensure_future(_shutdown.wait())
            done, _ = await asyncio.wait({get_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
            stop_task.cancel()
            if get_task not in done:
                get_task.cancel()
                break
            line = get_task.result()
            if line is None:
                logger.info("stdin closed")
                break
            t = asyncio.create_task(_worker(line))
            tasks.add(t)
            t.add_done_callback(tasks.discard)

        pending: List[asyncio.Task[None]] = [t for t in tasks if not t.done()]
        if pending and settings.drain_timeout > 0:
            logger.info("Draining %d in-flight request(s)", len(pending))
            _, pending = await asyncio.wait(pending, timeout=settings.drain_timeout)
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
    finally:
        _mark_shutdown()
        reader_task.cancel()
        with suppress(asyncio.CancelledError):
            await reader_task
        await resilient.aclose()


def parse_args(argv: Optional[List[str]] = None) -> Settings:
    """Parse CLI arguments and environment variables into Settings.

    Recognized flags:
        --url / MCP_SERVER_URL
        --api-key / MCP_API_KEY
        --timeout / MCP_TOOL_CALL_TIMEOUT
        --log-level / MCP_WRAPPER_LOG_LEVEL
        --retries / RETRY_MAX_ATTEMPTS
        --drain-timeout

    Args:
        argv: Arguments (defaults to ``sys.argv[1:]``)

    Returns:
        Settings: Parsed configuration.

    Examples:
        >>> s = parse_args(["--url", "http://gw:7778/mcp", "--api-key", "k", "--drain-timeout", "0"])
        >>> s.server_url, s.api_key, s.drain_timeout
        ('http://gw:7778/mcp', 'k', 0.0)
    """
    parser = argparse.ArgumentParser(description="Stdio MCP Client <-> MCP Unified Gateway Bridge")
    parser.add_argument("--url", default=os.environ.get("MCP_SERVER_URL", DEFAULT_SERVER_URL), help="Gateway /mcp URL (env: MCP_SERVER_URL)")
    parser.add_argument("--api-key", default=os.environ.get("MCP_API_KEY"), help="X-API-Key header value (env: MCP_API_KEY)")
    parser.add_argument("--timeout", type=float, default=DEFAULT_RESPONSE_TIMEOUT, help="Response timeout in seconds (env: MCP_TOOL_CALL_TIMEOUT)")
    parser.add_argument("--retries", type=int, default=gateway_settings.retry_max_attempts, help="Attempts per request when the gateway is unreachable (env: RETRY_MAX_ATTEMPTS)")
    parser.add_argument("--drain-timeout", type=float, default=DEFAULT_DRAIN_TIMEOUT, help="Seconds to finish in-flight requests on shutdown (0 exits at once)")
    parser.add_argument(
        "--log-level",
        default=os.environ.get("MCP_WRAPPER_LOG_LEVEL", "INFO"),
        help="Logging level on stderr (case-insensitive, OFF disables)",
    )
    args = parser.parse_args(argv)

    return Settings(
        server_url=args.url,
        api_key=args.api_key,
        response_timeout=args.timeout,
        drain_timeout=args.drain_timeout,
        log_level=args.log_level,
        retries=args.retries,
    )


def _install_signal_handlers(loop: asyncio.AbstractEventLoop) -> None:
    """Install SIGINT/SIGTERM handlers that trigger graceful shutdown.

    Args:
        loop: The asyncio event loop to attach handlers to.

    Examples:
        >>> import asyncio
        >>> loop = asyncio.new_event_loop()
        >>> _install_signal_handlers(loop)
        >>> loop.close()
    """
    for sig in (getattr(signal, "SIGINT", None), getattr(signal, "SIGTERM", None)):
        if sig is None:
            continue
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, _mark_shutdown)


def main() -> None:
    """Entry point for the stdio wrapper: parse settings, configure logging, run until EOF or a signal."""
    settings = parse_args()
    setup_logging(settings.log_level)
    logger.info("Starting MCP stdio wrapper -> %s", settings.server_url)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    _install_signal_handlers(loop)

    try:
        loop.run_until_complete(main_async(settings))
    finally:
        loop.run_until_complete(asyncio.sleep(0))
        loop.close()
        logger.info("Shutdown complete.")
    sys.stdout.flush()
    sys.stderr.flush()
    # The stdin reader thread may still be blocked in readline after a signal.
    os._exit(0)


if __name__ == "__main__":
    main()
