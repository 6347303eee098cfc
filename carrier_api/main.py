"""FastAPI application factory."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from carrier_api.config import configure_structlog, get_settings
from carrier_api.db.session import dispose_engine
from carrier_api.error_handlers import register_exception_handlers
from carrier_api.middleware.api_key_auth import ApiKeyAuthMiddleware
from carrier_api.middleware.correlation_id import CorrelationIdMiddleware
from carrier_api.middleware.logging import LoggingMiddleware
from carrier_api.middleware.metrics import MetricsMiddleware, build_metrics_endpoint
from carrier_api.middleware.rate_limit import RateLimitMiddleware
from carrier_api.routers import analytics, health, keys, webhooks
from carrier_api.services.webhook_dispatcher import get_webhook_dispatcher


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    """Drain pending webhook deliveries and release pooled connections on shutdown."""
    yield
    await get_webhook_dispatcher().aclose()
    get_webhook_dispatcher.cache_clear()
    await dispose_engine()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    configure_structlog(settings)

    app = FastAPI(title=settings.app.service, lifespan=lifespan)
    app.add_middleware(ApiKeyAuthMiddleware)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(CorrelationIdMiddleware)
    register_exception_handlers(app, settings.app.environment)

    app.add_api_route("/metrics", build_metrics_endpoint(), methods=["GET"], include_in_schema=False)
    app.include_router(keys.router)
    app.include_router(analytics.router)
    app.include_router(webhooks.router)
    app.include_router(health.router)
    return app


app = create_app()
