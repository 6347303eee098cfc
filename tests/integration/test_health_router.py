"""Integration tests for liveness and readiness endpoints."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from carrier_api.error_handlers import register_exception_handlers
from carrier_api.routers.health import (
    check_postgres_ready,
    check_redis_ready,
    pending_webhook_deliveries,
    router,
)


async def _get(
    path: str,
    postgres_ready: bool = True,
    redis_ready: bool = True,
    pending: int = 0,
    environment: str = "production",
):
    app = FastAPI()
    register_exception_handlers(app, environment=environment)
    app.include_router(router)
    app.dependency_overrides[check_postgres_ready] = lambda: postgres_ready
    app.dependency_overrides[check_redis_ready] = lambda: redis_ready
    app.dependency_overrides[pending_webhook_deliveries] = lambda: pending
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        return await client.get(path)


async def test_live_does_not_depend_on_backends() -> None:
    response = await _get("/health/live", postgres_ready=False, redis_ready=False)

    assert response.status_code == 200
    assert response.json() == {"status": "live"}


@pytest.mark.parametrize(
    ("redis_ready", "status", "redis_check"),
    [
        (True, "ready", "ok"),
        (False, "degraded", "unavailable"),
    ],
)
async def test_ready_reports_backends_and_delivery_backlog(
    redis_ready: bool, status: str, redis_check: str
) -> None:
    response = await _get("/health/ready", redis_ready=redis_ready, pending=3)

    assert response.status_code == 200
    assert response.json() == {
        "status": status,
        "checks": {"postgres": "ok", "redis": redis_check},
        "pending_webhook_deliveries": 3,
    }


@pytest.mark.parametrize(
    ("environment", "detail"),
    [
        ("production", "Internal server error."),
        ("development", "Database is unavailable."),
    ],
)
async def test_ready_returns_503_when_postgres_is_down(environment: str, detail: str) -> None:
    response = await _get("/health/ready", postgres_ready=False, environment=environment)

    assert response.status_code == 503
    assert response.json() == {"detail": detail, "code": "service_unavailable"}
