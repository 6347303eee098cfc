"""Business API usage analytics routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from carrier_api.dependencies import get_current_owner, get_database_session
from carrier_api.models.user import User
from carrier_api.schemas.api_key import ApiUsageResponse
from carrier_api.services.api_key_service import ApiKeyService, get_api_key_service

router = APIRouter(prefix="/api/business/analytics", tags=["analytics"])


@router.get("/usage", response_model=ApiUsageResponse)
async def api_usage(
    owner: Annotated[User, Depends(get_current_owner)],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    api_key_service: Annotated[ApiKeyService, Depends(get_api_key_service)],
) -> ApiUsageResponse:
    """Return request totals across the caller's keys."""
    stats = await api_key_service.usage_stats(db_session, owner)
    return ApiUsageResponse(
        total_requests=stats.total_requests,
        active_keys=stats.active_keys,
        total_keys=stats.total_keys,
        requests_per_key=stats.requests_per_key,
        average_requests_per_key=stats.average_requests_per_key,
        requests_last_hour=stats.requests_last_window,
    )
