# -*- coding: utf-8 -*-
"""Location: ./mcpunified/main.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

MCP Unified Gateway - HTTP front door.
This module builds the FastAPI application that serves one GatewayInstance:

- ``POST /mcp``: JSON-RPC 2.0 (``initialize``, ``ping``, ``tools/list``, ``tools/call``).
  Every envelope is answered with HTTP 200; notifications get 204 and no body.
- ``WS /ws``: the same JSON-RPC handling, one envelope per text frame.
- ``GET /health``: overall status, listeners and per-source health.
- ``GET /metrics``: request and tool-call counters.
- ``GET /``: service banner.
- ``/admin/*``: source management, guarded by ``X-API-Key``.
- ``OPTIONS`` on any path: CORS preflight, always 200.

The gateway is read from ``app.state.gateway``; nothing here is a module-level singleton.
Lifecycle (initialize/shutdown) normally belongs to the resilience supervisor, which serves
one app from two listeners. :func:`app_factory` builds a self-managing app for
``uvicorn --factory`` deployments with a single listener.
"""

# Standard
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Optional

# Third-Party
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

# First-Party
from mcpunified import __version__
from mcpunified.errors import DuplicateSourceIdError
from mcpunified.gateway import GatewayInstance
from mcpunified.handlers.rpc import handle_message
from mcpunified.middleware.cors import ALLOW_HEADERS, ALLOW_METHODS, ALLOW_ORIGINS, PreflightMiddleware
from mcpunified.models import SourceDescriptor
from mcpunified.services.logging_service import logging_service

logger = logging_service.get_logger(__name__)

API_KEY_HEADER = "X-API-Key"

protocol_router = APIRouter(tags=["Protocol"])
utility_router = APIRouter(tags=["Utilities"])
admin_router = APIRouter(prefix="/admin", tags=["Admin"])


def get_gateway(request: Request) -> GatewayInstance:
    """Gateway serving this app.

    Args:
        request: Incoming request

    Returns:
        GatewayInstance
    """
    return request.app.state.gateway


def extract_api_key(headers: Any) -> Optional[str]:
    """Read a key from ``X-API-Key`` or an ``Authorization: Bearer`` header.

    Args:
        headers: Request or WebSocket headers

    Returns:
        The key, or None

    Examples:
        >>> extract_api_key({"x-api-key": "k1"})
        'k1'
        >>> extract_api_key({"authorization": "Bearer k2"})
        'k2'
        >>> extract_api_key({}) is None
        True
    """
    key = headers.get(API_KEY_HEADER.lower())
    if key:
        return key
    authorization = headers.get("authorization") or ""
    if authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return None


def require_admin_key(request: Request, gateway: GatewayInstance = Depends(get_gateway)) -> None:
    """Dependency guarding admin routes.

    Args:
        request: Incoming request
        gateway: Serving gateway

    Raises:
        HTTPException: 401 when the key is missing or wrong, or no keys are configured
    """
    key = extract_api_key(request.headers)
    if not key or key not in gateway.settings.accepted_api_keys():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or missing API key")


def require_client_key(request: Request, gateway: GatewayInstance = Depends(get_gateway)) -> None:
    """Dependency guarding ``/mcp`` when ``AUTH_REQUIRED`` is set.

    Args:
        request: Incoming request
        gateway: Serving gateway
    """
    if gateway.settings.auth_required:
        require_admin_key(request, gateway)


@protocol_router.post("/mcp", dependencies=[Depends(require_client_key)])
@protocol_router.post("/mcp/", dependencies=[Depends(require_client_key)], include_in_schema=False)
async def handle_rpc(request: Request, gateway: GatewayInstance = Depends(get_gateway)) -> Response:
    """Handle one JSON-RPC envelope.

    Args:
        request: Incoming request
        gateway: Serving gateway

    Returns:
        JSON-RPC response, or 204 for notifications
    """
    body = await request.body()
    response = await handle_message(gateway, body)
    if response is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return JSONResponse(content=response)


@protocol_router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    JSON-RPC over WebSocket: each text frame is one envelope, answered on the same socket.

    Args:
        websocket: The WebSocket connection instance.
    """
    gateway: GatewayInstance = websocket.app.state.gateway
    if gateway.settings.auth_required and extract_api_key(websocket.headers) not in gateway.settings.accepted_api_keys():
        await websocket.close(code=1008, reason="Authentication required")
        return

    await websocket.accept()
    try:
        while True:
            data = await websocket.receive_text()
            response = await handle_message(gateway, data)
            if response is not None:
                await websocket.send_json(response)
    except WebSocketDisconnect:
        logger.debug("WebSocket client disconnected")


@utility_router.get("/health")
async def healthcheck(gateway: GatewayInstance = Depends(get_gateway)) -> JSONResponse:
    """
    Report overall status, listeners and per-source health.

    Args:
        gateway: Serving gateway

    Returns:
        200 while any listener is serving, 503 otherwise.
    """
    sources = gateway.sources_summary()
    content = {
        "status": gateway.status(),
        "service": gateway.settings.app_name,
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "listeners": dict(gateway.listeners),
        "sources": sources,
        "activeSources": sum(1 for s in sources if s["state"] == "healthy"),
        "totalTools": len(gateway.router.index),
    }
    return JSONResponse(content=content, status_code=status.HTTP_503_SERVICE_UNAVAILABLE if gateway.is_failed else status.HTTP_200_OK)


@utility_router.get("/metrics")
async def metrics(gateway: GatewayInstance = Depends(get_gateway)) -> Dict[str, Any]:
    """
    Request/tool-call counters plus source availability.

    Args:
        gateway: Serving gateway

    Returns:
        Metrics snapshot
    """
    states = gateway.source_states()
    tool_counts = gateway.router.catalog_sizes()
    healthy = sum(1 for state in states.values() if state == "healthy")
    snapshot = gateway.metrics.snapshot()
    snapshot["sources"] = {source_id: {"state": state, "tools": tool_counts.get(source_id, 0)} for source_id, state in states.items()}
    snapshot["availability"] = round(healthy / len(states) * 100, 1) if states else None
    return snapshot


@utility_router.get("/")
async def root(gateway: GatewayInstance = Depends(get_gateway)) -> Dict[str, Any]:
    """
    Service banner.

    Args:
        gateway: Serving gateway

    Returns:
        Name, version and endpoint list
    """
    return {
        "name": gateway.settings.app_name,
        "version": __version__,
        "status": gateway.status(),
        "sources": len(gateway.registry),
        "totalTools": len(gateway.router.index),
        "endpoints": {
            "mcp": "POST /mcp",
            "websocket": "/ws",
            "health": "GET /health",
            "metrics": "GET /metrics",
            "admin": "/admin/sources, /admin/refresh",
        },
    }


@admin_router.get("/sources", dependencies=[Depends(require_admin_key)])
async def list_sources(gateway: GatewayInstance = Depends(get_gateway)) -> Dict[str, Any]:
    """
    List registered sources with their health.

    Args:
        gateway: Serving gateway

    Returns:
        Sources in registration order
    """
    tool_counts = gateway.router.catalog_sizes()
    return {
        "sources": [
            {**descriptor.to_wire(), "health": gateway.health.get(descriptor.id).to_wire(descriptor.id), "tools": tool_counts.get(descriptor.id, 0)}
            for descriptor in gateway.registry
        ]
    }


@admin_router.post("/sources", dependencies=[Depends(require_admin_key)], status_code=status.HTTP_201_CREATED)
async def add_source(descriptor: SourceDescriptor, gateway: GatewayInstance = Depends(get_gateway)) -> Dict[str, Any]:
    """
    Register a source at runtime.

    Args:
        descriptor: New source
        gateway: Serving gateway

    Returns:
        The source, its first health snapshot and its tool count

    Raises:
        HTTPException: 409 if the id is already registered
    """
    try:
        health = await gateway.add_source(descriptor)
    except DuplicateSourceIdError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return {
        "source": descriptor.to_wire(),
        "health": health.to_wire(descriptor.id),
        "tools": gateway.router.catalog_sizes().get(descriptor.id, 0),
    }


@admin_router.post("/refresh", dependencies=[Depends(require_admin_key)])
async def refresh(gateway: GatewayInstance = Depends(get_gateway)) -> Dict[str, Any]:
    """
    Probe every source and rebuild the tool index.

    Args:
        gateway: Serving gateway

    Returns:
        Health summary and tool count
    """
    await gateway.refresh()
    return {"sources": gateway.sources_summary(), "totalTools": len(gateway.router.index)}


def create_app(gateway: GatewayInstance, manage_lifecycle: bool = False) -> FastAPI:
    """Build the FastAPI app serving a gateway.

    Args:
        gateway: Gateway to serve
        manage_lifecycle: Initialize and shut the gateway down with the app

    Returns:
        FastAPI application
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        """
        Initialise the gateway on startup and shut it down on exit.

        Args:
            _app (FastAPI): FastAPI app

        Yields:
            None
        """
        logging_service.initialize()
        await gateway.initialize()
        try:
            yield
        finally:
            await gateway.shutdown()

    app = FastAPI(
        title=gateway.settings.app_name,
        version=__version__,
        description="Unified MCP gateway aggregating stdio, HTTP, WebSocket and in-process tool sources",
        lifespan=lifespan if manage_lifecycle else None,
    )
    app.state.gateway = gateway
    app.add_middleware(CORSMiddleware, allow_origins=ALLOW_ORIGINS, allow_methods=ALLOW_METHODS, allow_headers=ALLOW_HEADERS)
    # Added last so it wraps CORSMiddleware and answers every OPTIONS itself.
    app.add_middleware(PreflightMiddleware)
    app.include_router(protocol_router)
    app.include_router(utility_router)
    app.include_router(admin_router)
    return app


def app_factory() -> FastAPI:
    """Self-managing app for ``uvicorn --factory mcpunified.main:app_factory``.

    Returns:
        FastAPI application owning a gateway built from the environment
    """
    return create_app(GatewayInstance(), manage_lifecycle=True)
