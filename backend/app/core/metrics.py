"""
Prometheus Metrics Collection for the RoboHub Auth service

Each process keeps its own metrics; they are scraped independently per pod.
"""

import logging
import re
import time
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from typing import Callable

from fastapi import Request, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# =============================================================================
# Application Info Metrics
# =============================================================================

try:
    APP_VERSION = get_version("robohub-auth")
except PackageNotFoundError:
    APP_VERSION = "unknown"

app_info = Info("robohub_auth_app", "Application information")
app_info.info(
    {
        "version": APP_VERSION,
        "app_name": "RoboHub Auth",
    }
)

# =============================================================================
# HTTP Request Metrics
# =============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint and status",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

http_requests_in_progress = Gauge(
    "http_requests_in_progress",
    "Number of HTTP requests currently being processed",
    ["method", "endpoint"],
)

# =============================================================================
# External API Metrics
# =============================================================================

external_api_requests_total = Counter(
    "external_api_requests_total",
    "Total external API requests by service",
    ["service"],
)

external_api_errors_total = Counter(
    "external_api_errors_total",
    "Total external API errors by service",
    ["service"],
)

external_api_duration_seconds = Histogram(
    "external_api_duration_seconds",
    "External API request duration in seconds",
    ["service"],
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0),
)

# =============================================================================
# Token Exchange Metrics
# =============================================================================

token_exchanges_total = Counter(
    "token_exchanges_total",
    "Total token exchange attempts by result (error code or 'issued')",
    ["result"],
)

jwks_refreshes_total = Counter(
    "jwks_refreshes_total",
    "Total JWKS refresh attempts by result",
    ["result"],
)

jwks_keys_cached = Gauge(
    "jwks_keys_cached",
    "Number of signing keys in the current JWKS snapshot",
)

rate_limit_rejections_total = Counter(
    "rate_limit_rejections_total",
    "Total requests rejected by the per-repository rate limiter",
)

rate_limit_buckets = Gauge(
    "rate_limit_buckets",
    "Number of repositories currently tracked by the rate limiter",
)

policy_denials_total = Counter(
    "policy_denials_total",
    "Total policy denials by reason",
    ["reason"],
)

# =============================================================================
# System Metrics
# =============================================================================

uptime_seconds = Gauge(
    "uptime_seconds",
    "Application uptime in seconds",
)

# Track startup time
startup_time = time.time()


def update_uptime():
    """Update the uptime metric."""
    uptime_seconds.set(time.time() - startup_time)


# =============================================================================
# Prometheus Metrics Endpoint
# =============================================================================


async def metrics_endpoint(request: Request) -> Response:
    """
    Prometheus metrics endpoint.

    Should only be reachable from inside the cluster, not through the Ingress.
    """
    update_uptime()
    metrics_output = generate_latest(REGISTRY)
    return Response(content=metrics_output, media_type=CONTENT_TYPE_LATEST)


# =============================================================================
# Middleware for HTTP Metrics
# =============================================================================


class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    Middleware to automatically collect HTTP request metrics.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Skip metrics for the /metrics endpoint itself to avoid recursion
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        endpoint = self._normalize_path(request.url.path)

        http_requests_in_progress.labels(method=method, endpoint=endpoint).inc()
        start_time = time.time()
        status = 500

        try:
            response = await call_next(request)
            status = response.status_code
        except Exception as e:
            logger.error(f"Error in PrometheusMiddleware: {e}")
            raise
        finally:
            duration = time.time() - start_time
            http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(duration)
            http_requests_total.labels(method=method, endpoint=endpoint, status=status).inc()
            http_requests_in_progress.labels(method=method, endpoint=endpoint).dec()

        logger.info(f"{method} {request.url.path} {status} {duration * 1000:.1f}ms")
        return response

    def _normalize_path(self, path: str) -> str:
        """
        Normalize URL paths to prevent cardinality explosion.

        Examples:
          /auth/github-oidc/ -> /auth/github-oidc
          /things/123 -> /things/{id}
        """
        path = re.sub(r"/\d+", "/{id}", path)
        if len(path) > 1:
            path = path.rstrip("/")
        return path
