"""Webhook subscription request/response schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import AnyHttpUrl, BaseModel, Field

from carrier_api.core.webhooks import WILDCARD_EVENT
from carrier_api.models.webhook import WebhookStatus


class WebhookCreateRequest(BaseModel):
    """Create webhook request payload."""

    url: AnyHttpUrl
    events: list[str] = Field(default_factory=lambda: [WILDCARD_EVENT], min_length=1)
    description: str = Field(default="", max_length=500)
    secret: str | None = Field(default=None, min_length=16, max_length=128)


class WebhookUpdateRequest(BaseModel):
    """Update webhook request payload; the secret is never rotated here."""

    url: AnyHttpUrl
    events: list[str] = Field(min_length=1)
    description: str = Field(default="", max_length=500)


class WebhookResponse(BaseModel):
    """Webhook subscription with delivery counters."""

    webhook_id: UUID
    url: str
    events: list[str]
    status: WebhookStatus
    description: str | None
    success_count: int
    failure_count: int
    last_triggered_at: datetime | None
    created_at: datetime


class WebhookCreateResponse(WebhookResponse):
    """Created webhook including the signing secret."""

    secret: str


class WebhookTestResponse(BaseModel):
    webhook_id: UUID
    event: str
    success: bool


class WebhookEventItem(BaseModel):
    """Supported event catalogue entry."""

    name: str
    description: str
