"""Business API key management routes."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from carrier_api.dependencies import get_current_owner, get_database_session
from carrier_api.models.user import User
from carrier_api.schemas.api_key import (
    ApiKeyCreateRequest,
    ApiKeyCreateResponse,
    ApiKeyListItem,
    ApiKeyRevokeResponse,
)
from carrier_api.services.api_key_service import ApiKeyService, get_api_key_service
from carrier_api.services.audit_service import AuditService, get_audit_service
from carrier_api.services.errors import ServiceError

router = APIRouter(prefix="/api/business/keys", tags=["api-keys"])


@router.post("", response_model=ApiKeyCreateResponse, status_code=201)
async def issue_api_key(
    request: Request,
    payload: ApiKeyCreateRequest,
    owner: Annotated[User, Depends(get_current_owner)],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    api_key_service: Annotated[ApiKeyService, Depends(get_api_key_service)],
    audit_service: Annotated[AuditService, Depends(get_audit_service)],
) -> ApiKeyCreateResponse:
    """Issue an API key and return the raw key exactly once."""
    try:
        issued = await api_key_service.issue(
            db_session,
            owner,
            label=payload.label,
            description=payload.description,
            rate_limit=payload.rate_limit,
        )
    except ServiceError as exc:
        await audit_service.record(
            request,
            "api_key.issued",
            owner,
            success=False,
            target_type="api_key",
            failure_reason=exc.code,
        )
        raise

    await audit_service.record(
        request,
        "api_key.issued",
        owner,
        success=True,
        target_id=issued.key_id,
        target_type="api_key",
        metadata={"key_prefix": issued.key_prefix, "rate_limit": issued.rate_limit},
    )
    return ApiKeyCreateResponse(
        key_id=issued.key_id,
        api_key=issued.api_key,
        key_prefix=issued.key_prefix,
        label=issued.label,
        rate_limit=issued.rate_limit,
        expires_at=issued.expires_at,
    )


@router.get("", response_model=list[ApiKeyListItem])
async def list_api_keys(
    owner: Annotated[User, Depends(get_current_owner)],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    api_key_service: Annotated[ApiKeyService, Depends(get_api_key_service)],
) -> list[ApiKeyListItem]:
    """List the owner's API keys without exposing raw key material."""
    keys = await api_key_service.list_keys(db_session, owner)
    return [
        ApiKeyListItem(
            key_id=row.id,
            key_prefix=row.key_prefix,
            label=row.label,
            description=row.description,
            status=row.status,
            rate_limit=row.rate_limit,
            requests_count=row.requests_count,
            last_used_at=row.last_used_at,
            expires_at=row.expires_at,
            created_at=row.created_at,
        )
        for row in keys
    ]


@router.delete("/{key_id}", response_model=ApiKeyRevokeResponse)
async def revoke_api_key(
    request: Request,
    key_id: UUID,
    owner: Annotated[User, Depends(get_current_owner)],
    db_session: Annotated[AsyncSession, Depends(get_database_session)],
    api_key_service: Annotated[ApiKeyService, Depends(get_api_key_service)],
    audit_service: Annotated[AuditService, Depends(get_audit_service)],
) -> ApiKeyRevokeResponse:
    """Revoke an API key owned by the caller."""
    try:
        revoked = await api_key_service.revoke(db_session, key_id, owner)
    except ServiceError as exc:
        await audit_service.record(
            request,
            "api_key.revoked",
            owner,
            success=False,
            target_id=key_id,
            target_type="api_key",
            failure_reason=exc.code,
        )
        raise

    await audit_service.record(
        request,
        "api_key.revoked",
        owner,
        success=True,
        target_id=revoked.id,
        target_type="api_key",
        metadata={"key_prefix": revoked.key_prefix, "status": revoked.status.value},
    )
    return ApiKeyRevokeResponse(detail="API key revoked.", key_id=revoked.id, status=revoked.status)
