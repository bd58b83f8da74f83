# -*- coding: utf-8 -*-
"""Location: ./mcpunified/cli.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

mcpunified CLI ─ run the gateway under the resilience supervisor
This module is exposed as a **console-script** via:

    [project.scripts]
    mcpunified = "mcpunified.cli:main"

Options given on the command line override the matching environment variables; everything
else (sources, auth, health timings) comes from the environment or ``.env``.

Typical usage
─────────────
```console
$ mcpunified                               # primary 7777, fallback 7778
$ mcpunified --primary-port 9000 --no-fallback
$ SOURCES_FILE=sources.yaml mcpunified --log-level DEBUG
```
"""

# Future
from __future__ import annotations

# Standard
import argparse
import asyncio
import sys
from typing import Any, Dict, List, Optional

# Third-Party
from pydantic import ValidationError

# First-Party
from mcpunified import __version__
from mcpunified.config import get_settings, Settings
from mcpunified.errors import GatewayStartupError
from mcpunified.services.logging_service import logging_service
from mcpunified.supervisor import serve

logger = logging_service.get_logger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line options.

    Args:
        argv: Arguments (defaults to ``sys.argv[1:]``)

    Returns:
        Parsed namespace

    Examples:
        >>> ns = parse_args(["--primary-port", "9000", "--no-fallback"])
        >>> ns.primary_port, ns.no_fallback, ns.host
        (9000, True, None)
    """
    parser = argparse.ArgumentParser(prog="mcpunified", description="Unified MCP gateway")
    parser.add_argument("--version", "-V", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--host", help="Interface for both listeners (env HOST)")
    parser.add_argument("--primary-port", type=int, help="Primary listener port (env PRIMARY_PORT)")
    parser.add_argument("--fallback-port", type=int, help="Fallback listener port (env FALLBACK_PORT)")
    parser.add_argument("--no-fallback", action="store_true", help="Serve the primary listener only")
    parser.add_argument("--sources-file", help="YAML/JSON source catalog (env SOURCES_FILE)")
    parser.add_argument("--log-level", help="Logging level (env LOG_LEVEL)")
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> Settings:
    """Apply command line overrides on top of the environment settings.

    Args:
        args: Parsed options

    Returns:
        Settings

    Examples:
        >>> s = build_settings(parse_args(["--primary-port", "9100", "--fallback-port", "9101"]))
        >>> s.listener_ports()
        {'primary': 9100, 'fallback': 9101}
    """
    overrides: Dict[str, Any] = {}
    if args.host:
        overrides["host"] = args.host
    if args.primary_port is not None:
        overrides["primary_port"] = args.primary_port
    if args.fallback_port is not None:
        overrides["fallback_port"] = args.fallback_port
    if args.no_fallback:
        overrides["enable_fallback"] = False
    if args.sources_file:
        overrides["sources_file"] = args.sources_file
    if args.log_level:
        overrides["log_level"] = args.log_level
    base = get_settings()
    if not overrides:
        return base
    return Settings(**{**base.model_dump(), **overrides})


def main(argv: Optional[List[str]] = None) -> None:  # noqa: D401 - imperative mood is fine here
    """Entry point for the *mcpunified* console script.

    Args:
        argv: Arguments (defaults to ``sys.argv[1:]``)
    """
    args = parse_args(argv)
    try:
        settings = build_settings(args)
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(2)

    logging_service.initialize(settings.log_level)
    try:
        code = asyncio.run(serve(settings))
    except GatewayStartupError as e:
        logger.critical(f"Gateway failed to start: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        code = 0
    sys.exit(code)


if __name__ == "__main__":  # pragma: no cover
    main()
