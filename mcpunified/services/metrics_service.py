# -*- coding: utf-8 -*-
"""Location: ./mcpunified/services/metrics_service.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

Metrics Service.
In-memory counters for the ``/metrics`` endpoint: JSON-RPC requests per method, errors,
tool calls per source and per tool, and response-time percentiles over a sliding window.
"""

# Standard
from collections import Counter, deque
from datetime import datetime, timezone
import math
from typing import Any, Deque, Dict, Iterable, Optional

WINDOW_SIZE = 1000


def percentile(samples: Iterable[float], pct: float) -> Optional[float]:
    """Nearest-rank percentile.

    Args:
        samples: Observations
        pct: Percentile in (0, 100]

    Returns:
        The percentile, or None for no samples

    Examples:
        >>> percentile([1, 2, 3, 4, 5, 6, 7, 8, 9, 10], 95)
        10
        >>> percentile([1, 2, 3, 4], 50)
        2
        >>> percentile([], 99) is None
        True
    """
    ordered = sorted(samples)
    if not ordered:
        return None
    rank = max(1, math.ceil(pct / 100 * len(ordered)))
    return ordered[rank - 1]


class MetricsService:
    """Request and tool-call counters.

    Examples:
        >>> m = MetricsService()
        >>> m.record_request("tools/list", 0.010, True)
        >>> m.record_tool_call("core", "echo", 0.020, False)
        >>> snap = m.snapshot()
        >>> snap["requests"]["total"], snap["toolCalls"]["errors"], snap["toolCalls"]["bySource"]
        (1, 1, {'core': 1})
    """

    def __init__(self, window: int = WINDOW_SIZE):
        """Initialize counters.

        Args:
            window: Number of most recent response times kept for percentiles
        """
        self.started_at = datetime.now(timezone.utc)
        self.requests_total = 0
        self.request_errors = 0
        self.by_method: Counter = Counter()
        self.tool_calls_total = 0
        self.tool_call_errors = 0
        self.tool_calls_by_source: Counter = Counter()
        self.tool_calls_by_tool: Counter = Counter()
        self._response_times: Deque[float] = deque(maxlen=window)

    def record_request(self, method: str, elapsed: float, success: bool) -> None:
        """Count one JSON-RPC request.

        Args:
            method: JSON-RPC method (or a placeholder for unparseable bodies)
            elapsed: Seconds spent handling it
            success: False when an error envelope was returned
        """
        self.requests_total += 1
        self.by_method[method] += 1
        if not success:
            self.request_errors += 1
        self._response_times.append(elapsed * 1000)

    def record_tool_call(self, source_id: str, tool: str, elapsed: float, success: bool) -> None:
        """Count one routed tool call.

        Args:
            source_id: Owning source
            tool: Merged-namespace tool name
            elapsed: Seconds spent in the adapter
            success: Whether the adapter returned a result
        """
        self.tool_calls_total += 1
        self.tool_calls_by_source[source_id] += 1
        self.tool_calls_by_tool[tool] += 1
        if not success:
            self.tool_call_errors += 1

    def snapshot(self) -> Dict[str, Any]:
        """Render the counters.

        Returns:
            JSON-friendly dict
        """
        times = list(self._response_times)
        average = round(sum(times) / len(times), 2) if times else None
        return {
            "startedAt": self.started_at.isoformat(),
            "uptimeSeconds": round((datetime.now(timezone.utc) - self.started_at).total_seconds(), 1),
            "requests": {
                "total": self.requests_total,
                "errors": self.request_errors,
                "byMethod": dict(self.by_method),
            },
            "toolCalls": {
                "total": self.tool_calls_total,
                "errors": self.tool_call_errors,
                "bySource": dict(self.tool_calls_by_source),
                "byTool": dict(self.tool_calls_by_tool),
            },
            "responseTimeMs": {
                "avg": average,
                "p95": percentile(times, 95),
                "p99": percentile(times, 99),
            },
        }
