"""API key request/response schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from carrier_api.models.api_key import ApiKeyStatus


class ApiKeyCreateRequest(BaseModel):
    """Issue API key request payload."""

    label: str | None = Field(default=None, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    rate_limit: int | None = Field(default=None, ge=1)


class ApiKeyCreateResponse(BaseModel):
    """Issue API key response containing the raw key one time."""

    key_id: UUID
    api_key: str
    key_prefix: str
    label: str
    rate_limit: int
    expires_at: datetime
    message: str = "Store this key securely. It will not be shown again."


class ApiKeyListItem(BaseModel):
    """List API key item without key material."""

    key_id: UUID
    key_prefix: str
    label: str | None
    description: str | None
    status: ApiKeyStatus
    rate_limit: int
    requests_count: int
    last_used_at: datetime | None
    expires_at: datetime | None
    created_at: datetime


class ApiKeyRevokeResponse(BaseModel):
    detail: str
    key_id: UUID
    status: ApiKeyStatus


class ApiUsageResponse(BaseModel):
    """Aggregate API usage across the owner's keys."""

    total_requests: int
    active_keys: int
    total_keys: int
    requests_per_key: dict[str, int]
    average_requests_per_key: int
    requests_last_hour: int
