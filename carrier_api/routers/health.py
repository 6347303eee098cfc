"""Liveness and readiness endpoints."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from carrier_api.db.session import get_engine
from carrier_api.middleware.rate_limit import get_rate_limit_redis_client
from carrier_api.services.errors import BackendUnavailableError
from carrier_api.services.webhook_dispatcher import get_webhook_dispatcher

router = APIRouter(prefix="/health", tags=["health"])


async def check_postgres_ready() -> bool:
    try:
        async with get_engine().connect() as connection:
            await connection.execute(select(1))
        return True
    except (SQLAlchemyError, OSError):
        return False


async def check_redis_ready() -> bool:
    try:
        return bool(await get_rate_limit_redis_client().ping())
    except (RedisError, OSError):
        return False


def pending_webhook_deliveries() -> int:
    return get_webhook_dispatcher().pending


@router.get("/live")
async def live() -> dict[str, str]:
    return {"status": "live"}


@router.get("/ready")
async def ready(
    postgres_ready: Annotated[bool, Depends(check_postgres_ready)],
    redis_ready: Annotated[bool, Depends(check_redis_ready)],
    pending_deliveries: Annotated[int, Depends(pending_webhook_deliveries)],
) -> dict[str, Any]:
    """Report per-backend readiness and the webhook fan-out backlog.

    Keys, usage logs and webhooks all live in Postgres, so without it the
    service is not ready. Redis only backs the per-client limiter, which
    fails open; losing it marks the service degraded.
    """
    if not postgres_ready:
        raise BackendUnavailableError("Database is unavailable.")
    return {
        "status": "ready" if redis_ready else "degraded",
        "checks": {
            "postgres": "ok",
            "redis": "ok" if redis_ready else "unavailable",
        },
        "pending_webhook_deliveries": pending_deliveries,
    }
