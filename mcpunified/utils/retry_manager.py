# -*- coding: utf-8 -*-
"""Location: ./mcpunified/utils/retry_manager.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Resilient HTTP client.
An ``httpx.AsyncClient`` wrapper that retries requests which never reached the server:
connection refused, connect timeouts, and responses saying the request was turned away before
it was handled (429, 502, 503). Read timeouts, a 504 from a proxy and other failures after the
request was sent are not retried, since the ``tools/call`` may already have run.

Backoff is exponential with jitter, capped at ``max_delay``:
``delay = min(base_backoff * 2**attempt + uniform(0, delay * jitter_max), max_delay)``.
A ``Retry-After`` header on 429/503 replaces the computed delay.

Examples:
    >>> from mcpunified.utils.retry_manager import RETRYABLE_STATUS_CODES, NON_RETRYABLE_STATUS_CODES
    >>> 503 in RETRYABLE_STATUS_CODES, 500 in RETRYABLE_STATUS_CODES
    (True, False)
    >>> RETRYABLE_STATUS_CODES & NON_RETRYABLE_STATUS_CODES
    frozenset()
"""

# Standard
import asyncio
import random
from typing import Any, Dict, Optional

# Third-Party
import httpx

# First-Party
from mcpunified.config import settings
from mcpunified.services.logging_service import logging_service

logger = logging_service.get_logger(__name__)

RETRYABLE_STATUS_CODES = frozenset(
    {
        429,  # Too Many Requests
        502,  # Bad Gateway
        503,  # Service Unavailable
    }
)

NON_RETRYABLE_STATUS_CODES = frozenset({400, 401, 403, 404, 405, 406, 500, 504})

# Failures raised before the request body reached the server.
CONNECTION_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)


class ResilientHttpClient:
    """HTTP client retrying connection-level failures with jittered exponential backoff.

    Examples:
        >>> client = ResilientHttpClient(max_retries=5, base_backoff=0.25, client_args={"timeout": 3.0})
        >>> client.max_retries, client.base_backoff
        (5, 0.25)
        >>> isinstance(client.client, httpx.AsyncClient)
        True
        >>> client.backoff_delay(0, jitter=False), client.backoff_delay(3, jitter=False)
        (0.25, 2.0)
    """

    def __init__(
        self,
        max_retries: int = settings.retry_max_attempts,
        base_backoff: float = settings.retry_base_delay,
        max_delay: float = settings.retry_max_delay,
        jitter_max: float = settings.retry_jitter_max,
        client_args: Optional[Dict[str, Any]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the client.

        Args:
            max_retries: Total attempts per request (at least one)
            base_backoff: Delay in seconds before the first retry
            max_delay: Upper bound on any single delay in seconds
            jitter_max: Jitter as a fraction of the computed delay
            client_args: Arguments for the underlying ``httpx.AsyncClient``
            client: Pre-built client (takes precedence over ``client_args``)
        """
        self.max_retries = max(1, max_retries)
        self.base_backoff = base_backoff
        self.max_delay = max_delay
        self.jitter_max = jitter_max
        self.client_args = client_args or {}
        self.client = client or httpx.AsyncClient(**self.client_args)

    def backoff_delay(self, attempt: int, jitter: bool = True) -> float:
        """Delay before retry number ``attempt + 1``.

        Args:
            attempt: Zero-based number of the attempt that just failed
            jitter: Add random jitter

        Returns:
            Seconds to wait
        """
        delay = self.base_backoff * (2**attempt)
        if jitter:
            # random.uniform() is safe here as jitter is only used for retry timing, not security
            delay += random.uniform(0, delay * self.jitter_max)  # nosec B311
        return min(delay, self.max_delay)

    def _retry_after(self, response: httpx.Response) -> Optional[float]:
        """Seconds requested by a ``Retry-After`` header, if numeric.

        Args:
            response: Response carrying the header

        Returns:
            Seconds capped at ``max_delay``, or None
        """
        value = response.headers.get("Retry-After")
        if not value:
            return None
        try:
            return min(float(value), self.max_delay)
        except ValueError:
            return None

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send a request, retrying connection-level failures.

        Args:
            method: HTTP method
            url: Target URL
            **kwargs: Passed to ``httpx.AsyncClient.request``

        Returns:
            The first response that is not retryable, or the last response once attempts run out

        Raises:
            httpx.HTTPError: Non-retryable transport errors, or the last connection error
        """
        response: Optional[httpx.Response] = None
        for attempt in range(self.max_retries):
            last_attempt = attempt == self.max_retries - 1
            try:
                logger.debug(f"Attempt {attempt + 1}/{self.max_retries}: {method} {url}")
                response = await self.client.request(method, url, **kwargs)
            except CONNECTION_ERRORS as exc:
                if last_attempt:
                    logger.error(f"Giving up on {method} {url} after {self.max_retries} attempts: {exc}")
                    raise
                delay = self.backoff_delay(attempt)
                logger.warning(f"Connection to {url} failed ({type(exc).__name__}); retrying in {delay:.2f}s")
                await asyncio.sleep(delay)
                continue

            if response.status_code not in RETRYABLE_STATUS_CODES or last_attempt:
                return response
            delay = self._retry_after(response)
            if delay is None:
                delay = self.backoff_delay(attempt)
            logger.info(f"Response {response.status_code} from {url}; retrying in {delay:.2f}s")
            await response.aclose()
            await asyncio.sleep(delay)
        return response

    async def get(self, url: str, **kwargs) -> httpx.Response:
        """Resilient GET.

        Args:
            url: Target URL
            **kwargs: Request options

        Returns:
            Response
        """
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        """Resilient POST.

        Args:
            url: Target URL
            **kwargs: Request options

        Returns:
            Response
        """
        return await self.request("POST", url, **kwargs)

    async def aclose(self) -> None:
        """Close the underlying client."""
        await self.client.aclose()

    async def __aenter__(self) -> "ResilientHttpClient":
        """Enter the async context.

        Returns:
            self
        """
        return self

    async def __aexit__(self, *args) -> None:
        """Close the client on exit.

        Args:
            *args: Exception info (ignored)
        """
        await self.aclose()
