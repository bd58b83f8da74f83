# -*- coding: utf-8 -*-
"""Location: ./mcpunified/middleware/cors.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Preflight Middleware.
Answers every ``OPTIONS`` request with 200 and the gateway's CORS headers, whatever the
path and whether or not the browser sent ``Access-Control-Request-Method``. Cross-origin
headers on all other responses come from Starlette's ``CORSMiddleware``, configured with
the same origins, methods and headers (see :func:`mcpunified.main.create_app`).
"""

# Third-Party
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

ALLOW_ORIGINS = ["*"]
ALLOW_METHODS = ["GET", "POST", "OPTIONS"]
ALLOW_HEADERS = ["Content-Type", "Authorization", "X-API-Key"]

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": ", ".join(ALLOW_METHODS),
    "Access-Control-Allow-Headers": ", ".join(ALLOW_HEADERS),
}


class PreflightMiddleware(BaseHTTPMiddleware):
    """
    Short-circuit ``OPTIONS`` with a 200 and the CORS headers.

    Examples:
        >>> CORS_HEADERS["Access-Control-Allow-Methods"]
        'GET, POST, OPTIONS'
        >>> CORS_HEADERS["Access-Control-Allow-Headers"]
        'Content-Type, Authorization, X-API-Key'
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        """
        Answer preflights; pass everything else through.

        Args:
            request: The incoming HTTP request
            call_next: The next middleware or endpoint handler

        Returns:
            Response
        """
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=CORS_HEADERS)
        return await call_next(request)
