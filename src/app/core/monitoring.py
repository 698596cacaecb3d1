"""Prometheus metrics and Sentry integration.

Provides:
- MetricsMiddleware: ASGI middleware for HTTP request metrics
- record_transition(): Counter for contract / firm offer / deal status changes
- record_notification(): Counter for outbound email outcomes
- init_sentry(): Initialize Sentry with request-id tagging
- get_metrics_response(): FastAPI route handler body for /metrics
"""

from __future__ import annotations

import time

from prometheus_client import (
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ── HTTP Metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# ── Lifecycle Metrics ────────────────────────────────────────────────────────

lifecycle_transitions_total = Counter(
    "lifecycle_transitions_total",
    "Status transitions applied to lifecycle entities",
    ["entity", "from_status", "to_status"],
)

notifications_total = Counter(
    "notifications_total",
    "Outbound notification attempts by template and outcome",
    ["template", "status"],
)


def record_transition(entity: str, from_status: str, to_status: str) -> None:
    lifecycle_transitions_total.labels(
        entity=entity,
        from_status=from_status,
        to_status=to_status,
    ).inc()


def record_notification(template: str, status: str) -> None:
    notifications_total.labels(template=template, status=status).inc()


# ── Metrics Middleware ───────────────────────────────────────────────────────


def _endpoint_label(request: Request) -> str:
    """Use the matched route template so token paths don't explode cardinality."""
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path or request.url.path


class MetricsMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that records Prometheus metrics for every HTTP request.

    Records request count and duration per method/endpoint.
    Skips the /metrics endpoint itself to avoid self-referential counting.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        endpoint = _endpoint_label(request)

        http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=str(response.status_code),
        ).inc()

        http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)

        return response


# ── Sentry Integration ───────────────────────────────────────────────────────


def init_sentry(dsn: str, environment: str) -> None:
    """Initialize Sentry SDK.

    Args:
        dsn: Sentry DSN string.
        environment: Deployment environment (development, staging, production).
    """
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.starlette import StarletteIntegration

    traces_sample_rate = 0.1 if environment == "production" else 1.0

    def before_send(event: dict, hint: dict) -> dict:
        """Strip bearer tokens from captured request URLs."""
        request = event.get("request") or {}
        url = request.get("url")
        if isinstance(url, str):
            for marker in ("/sign/", "/view/", "/public/", "/speaker/"):
                if marker in url:
                    prefix = url.split(marker, 1)[0]
                    request["url"] = f"{prefix}{marker}[redacted]"
                    break
        return event

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=traces_sample_rate,
        integrations=[
            StarletteIntegration(),
            FastApiIntegration(),
        ],
        before_send=before_send,
        send_default_pii=False,
    )


# ── Metrics Endpoint ─────────────────────────────────────────────────────────


def get_metrics_response() -> Response:
    """Generate Prometheus exposition format response."""
    return Response(
        content=generate_latest(REGISTRY),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
