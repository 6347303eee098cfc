"""Business webhook subscription routes."""

from __future__ import annotations

from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from carrier_api.core.webhooks import EVENT_DESCRIPTIONS, WebhookEvent
from carrier_api.dependencies import get_current_owner, get_database_session
from carrier_api.models.user import User
from carrier_api.models.webhook import Webhook
from carrier_api.schemas.webhook import (
    WebhookCreateRequest,
    WebhookCreateResponse,
    WebhookEventItem,
    WebhookResponse,
    WebhookTestResponse,
    WebhookUpdateRequest,
)
from carrier_api.services.audit_service import AuditService, get_audit_service
from carrier_api.services.errors import ServiceError
from carrier_api.services.webhook_service import WebhookService, get_webhook_service

router = APIRouter(prefix="/api/business/webhooks", tags=["webhooks"])


def _to_response(service: WebhookService, row: Webhook) -> dict[str, Any]:
    return {
        "webhook_id": row.id,
        "url": row.url,
        "events": service.events_of(row),
        "status": row.status,
        "description": row.description,
        "success_count": row.success_count,
        "failure_count": row.failure_count,
        "last_triggered_at": row.last_triggered_at,
        "created_at": row.created_at,
    }


async def _audit(
    audit_service: AuditService,
    request: Request,
    event_type: str,
    owner: User,
    webhook_id: UUID | None,
    exc: ServiceError | None = None,
    metadata: dict[str, Any] | None = None,
) -> None:
    await audit_service.record(
        request,
        event_type,
        owner,
        success=exc is None,
        target_id=webhook_id,
        target_type="webhook",
        failure_reason=exc.code if exc is not None else None,
        metadata=metadata,
    )


@router.get("/events", response_model=list[WebhookEventItem])
async def list_supported_events() -> list[WebhookEventItem]:
    """List the event names a webhook can subscribe to."""
    catalogue = [WebhookEventItem(name="*", description="Every event.")]
    catalogue.extend(
        WebhookEventItem(name=event.value, description=EVENT_DESCRIPTIONS[event])
        for event in WebhookEvent
    )
    return catalogue


@router.post("", response_model=WebhookCreateResponse, status_code=201)
async def create_webhook(
    request: Request,
    payload: WebhookCreateRequest,
    owner: Annotated[User, Depends(get_current_owner)],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    webhook_service: Annotated[WebhookService, Depends(get_webhook_service)],
    audit_service: Annotated[AuditService, Depends(get_audit_service)],
) -> WebhookCreateResponse:
    """Subscribe a URL to events; the signing secret is returned in the response."""
    try:
        row = await webhook_service.subscribe(
            db_session,
            owner,
            url=str(payload.url),
            events=payload.events,
            description=payload.description,
            secret=payload.secret,
        )
    except ServiceError as exc:
        await _audit(audit_service, request, "webhook.created", owner, None, exc)
        raise

    await _audit(
        audit_service,
        request,
        "webhook.created",
        owner,
        row.id,
        metadata={"url": row.url, "events": webhook_service.events_of(row)},
    )
    return WebhookCreateResponse(**_to_response(webhook_service, row), secret=row.secret)


@router.get("", response_model=list[WebhookResponse])
async def list_webhooks(
    owner: Annotated[User, Depends(get_current_owner)],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    webhook_service: Annotated[WebhookService, Depends(get_webhook_service)],
) -> list[WebhookResponse]:
    """List the caller's webhooks with delivery counters."""
    rows = await webhook_service.list_webhooks(db_session, owner)
    return [WebhookResponse(**_to_response(webhook_service, row)) for row in rows]


@router.put("/{webhook_id}", response_model=WebhookResponse)
async def update_webhook(
    request: Request,
    webhook_id: UUID,
    payload: WebhookUpdateRequest,
    owner: Annotated[User, Depends(get_current_owner)],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    webhook_service: Annotated[WebhookService, Depends(get_webhook_service)],
    audit_service: Annotated[AuditService, Depends(get_audit_service)],
) -> WebhookResponse:
    """Replace URL, events and description of an owned webhook."""
    try:
        row = await webhook_service.update(
            db_session,
            webhook_id,
            owner,
            url=str(payload.url),
            events=payload.events,
            description=payload.description,
        )
    except ServiceError as exc:
        await _audit(audit_service, request, "webhook.updated", owner, webhook_id, exc)
        raise

    await _audit(
        audit_service,
        request,
        "webhook.updated",
        owner,
        row.id,
        metadata={"url": row.url, "events": webhook_service.events_of(row)},
    )
    return WebhookResponse(**_to_response(webhook_service, row))


@router.delete("/{webhook_id}", status_code=204)
async def delete_webhook(
    request: Request,
    webhook_id: UUID,
    owner: Annotated[User, Depends(get_current_owner)],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    webhook_service: Annotated[WebhookService, Depends(get_webhook_service)],
    audit_service: Annotated[AuditService, Depends(get_audit_service)],
) -> Response:
    """Delete an owned webhook permanently."""
    try:
        await webhook_service.delete(db_session, webhook_id, owner)
    except ServiceError as exc:
        await _audit(audit_service, request, "webhook.deleted", owner, webhook_id, exc)
        raise

    await _audit(audit_service, request, "webhook.deleted", owner, webhook_id)
    return Response(status_code=204)


@router.post("/{webhook_id}/test", response_model=WebhookTestResponse)
async def test_webhook(
    webhook_id: UUID,
    owner: Annotated[User, Depends(get_current_owner)],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    webhook_service: Annotated[WebhookService, Depends(get_webhook_service)],
) -> WebhookTestResponse:
    """Send a synthetic webhook.test delivery and report its outcome."""
    success = await webhook_service.test(db_session, webhook_id, owner)
    return WebhookTestResponse(
        webhook_id=webhook_id,
        event=WebhookEvent.WEBHOOK_TEST.value,
        success=success,
    )
