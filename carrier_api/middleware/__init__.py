"""Middleware package exports."""

from carrier_api.middleware.api_key_auth import ApiKeyAuthMiddleware
from carrier_api.middleware.correlation_id import CorrelationIdMiddleware
from carrier_api.middleware.logging import LoggingMiddleware
from carrier_api.middleware.metrics import MetricsMiddleware, build_metrics_endpoint
from carrier_api.middleware.rate_limit import RateLimitMiddleware

__all__ = [
    "ApiKeyAuthMiddleware",
    "CorrelationIdMiddleware",
    "LoggingMiddleware",
    "MetricsMiddleware",
    "RateLimitMiddleware",
    "build_metrics_endpoint",
]
