"""FastAPI dependencies for services receiving webhook deliveries."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from fastapi import HTTPException, Request

from carrier_sdk.exceptions import WebhookVerificationError
from carrier_sdk.types import WebhookEnvelope
from carrier_sdk.webhooks import SIGNATURE_HEADER, parse_event


def webhook_event_dependency(
    secret: str | Callable[[], str],
) -> Callable[[Request], Awaitable[WebhookEnvelope]]:
    """Build a dependency that verifies and decodes the inbound delivery."""

    async def verified_event(request: Request) -> WebhookEnvelope:
        resolved_secret = secret() if callable(secret) else secret
        body = await request.body()
        try:
            return parse_event(body, request.headers.get(SIGNATURE_HEADER), resolved_secret)
        except WebhookVerificationError as exc:
            status_code = 400 if exc.code == "invalid_payload" else 401
            raise HTTPException(
                status_code=status_code,
                detail={"detail": exc.detail, "code": exc.code},
            ) from exc

    return verified_event
