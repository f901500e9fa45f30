"""Prometheus metrics for the AI BA FastAPI backend.

Adds an HTTP middleware that records request latency per method/path/status,
plus counters for relay sessions and post-stream persistence.
"""

from __future__ import annotations

import time
from typing import Callable, Awaitable

from prometheus_client import Counter, Histogram
from starlette.requests import Request
from starlette.responses import Response

# Histogram buckets chosen for web latencies (seconds); streamed replies run long
REQUEST_LATENCY = Histogram(
    "aiba_request_latency_seconds",
    "HTTP request latency in seconds",
    labelnames=("method", "path", "status"),
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0),
)

RELAY_SESSIONS = Counter(
    "aiba_relay_sessions_total",
    "Relay sessions by terminal outcome",
    labelnames=("outcome",),
)

RELAY_FRAGMENTS = Counter(
    "aiba_relay_fragments_total",
    "Text fragments forwarded to clients",
)

PERSISTENCE_FAILURES = Counter(
    "aiba_persistence_failures_total",
    "Chat/project writes that failed after all retries",
    labelnames=("target",),
)


def sanitize_path(path: str) -> str:
    """Reduce paths to their first one or two static segments.

    ``/api/projects/abc`` becomes ``/api/projects``; ``/projects/abc`` becomes
    ``/projects``.
    """
    if not path:
        return "/"
    segs = [s for s in path.split("?")[0].split("/") if s]
    if not segs:
        return "/"
    if segs[0] == "api" and len(segs) > 1:
        return "/api/" + segs[1]
    return "/" + segs[0]


def _path_label(request: Request) -> str:
    # Route templates like /api/projects/{project_id} are already low-cardinality
    route = request.scope.get("route")
    template = getattr(route, "path", None)
    if template:
        return template
    return sanitize_path(request.url.path)


def metrics_middleware_factory() -> Callable[[Request, Callable[[Request], Awaitable[Response]]], Awaitable[Response]]:
    """Observe latency up to the response head; streamed bodies are not included."""

    async def middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        if request.url.path.endswith("/metrics"):
            return await call_next(request)
        start = time.perf_counter()
        response = await call_next(request)
        REQUEST_LATENCY.labels(
            method=request.method,
            path=_path_label(request),
            status=str(response.status_code),
        ).observe(time.perf_counter() - start)
        return response

    return middleware
