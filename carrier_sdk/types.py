"""SDK data contract types."""

from __future__ import annotations

from typing import Any, Literal, TypedDict

ErrorCode = Literal[
    "api_key_required",
    "invalid_api_key",
    "rate_limited",
    "permission_denied",
    "not_found",
    "invalid_request",
    "method_not_allowed",
    "validation_failed",
    "key_generation_failed",
    "service_unavailable",
    "internal_error",
]

WebhookVerificationCode = Literal["missing_signature", "invalid_signature", "invalid_payload"]


class WebhookEnvelope(TypedDict):
    """Body of every webhook delivery."""

    event: str
    timestamp: str
    data: dict[str, Any]


class IssuedApiKey(TypedDict):
    key_id: str
    api_key: str
    key_prefix: str
    label: str
    rate_limit: int
    expires_at: str
    message: str


class ApiKeySummary(TypedDict):
    key_id: str
    key_prefix: str
    label: str | None
    description: str | None
    status: Literal["active", "inactive", "expired", "revoked"]
    rate_limit: int
    requests_count: int
    last_used_at: str | None
    expires_at: str | None
    created_at: str


class WebhookSubscription(TypedDict, total=False):
    """Webhook as returned by the API; `secret` only appears on creation."""

    webhook_id: str
    url: str
    events: list[str]
    status: Literal["active", "inactive", "suspended"]
    description: str | None
    success_count: int
    failure_count: int
    last_triggered_at: str | None
    created_at: str
    secret: str


class WebhookTestResult(TypedDict):
    webhook_id: str
    event: str
    success: bool


class ApiUsage(TypedDict):
    total_requests: int
    active_keys: int
    total_keys: int
    requests_per_key: dict[str, int]
    average_requests_per_key: int
    requests_last_hour: int
