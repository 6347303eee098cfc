"""Audit trail for business API key and webhook management."""

from __future__ import annotations

import ipaddress
from collections.abc import Mapping
from functools import lru_cache
from typing import Any
from uuid import UUID

import structlog
from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carrier_api.db.session import get_session_factory
from carrier_api.models.audit_event import AuditActorType, AuditEvent
from carrier_api.models.user import User

logger = structlog.get_logger(__name__)

_REDACTED = "***REDACTED***"
_SECRET_KEY_MARKERS = ("secret", "signature", "api_key")


def extract_client_ip(request: Request) -> str | None:
    """Return the canonical caller IP, preferring the first X-Forwarded-For hop."""
    candidates = [request.headers.get("x-forwarded-for", "").split(",")[0]]
    if request.client is not None:
        candidates.append(request.client.host)
    for candidate in candidates:
        try:
            return str(ipaddress.ip_address(candidate.strip()))
        except ValueError:
            continue
    return None


def _metadata_value(value: Any) -> Any:
    if isinstance(value, frozenset | set | tuple | list):
        return sorted(str(item) for item in value)
    if isinstance(value, UUID):
        return str(value)
    return value


def _audit_metadata(metadata: Mapping[str, Any] | None) -> dict[str, Any] | None:
    """Flatten collection values and mask keys that could carry credentials."""
    if not metadata:
        return None
    return {
        key: _REDACTED
        if any(marker in key.lower() for marker in _SECRET_KEY_MARKERS)
        else _metadata_value(value)
        for key, value in metadata.items()
    }


class AuditService:
    """Append one audit row per management action, outside the caller's transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def record(
        self,
        request: Request,
        event_type: str,
        owner: User,
        success: bool,
        target_type: str,
        target_id: UUID | None = None,
        failure_reason: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        """Persist the event; write failures are logged and never reach the caller."""
        correlation_id = getattr(request.state, "correlation_id", None)
        audit_event = AuditEvent(
            event_type=event_type,
            actor_id=owner.id,
            actor_type=AuditActorType.API_KEY,
            target_id=target_id,
            target_type=target_type,
            ip_address=extract_client_ip(request),
            correlation_id=str(correlation_id)[:128] if correlation_id else None,
            success=success,
            failure_reason=failure_reason,
            event_metadata=_audit_metadata(metadata),
        )

        try:
            async with self._session_factory() as db_session:
                db_session.add(audit_event)
                await db_session.commit()
        except (SQLAlchemyError, OSError) as exc:
            logger.error(
                "audit_write_failed",
                event_type=event_type,
                owner_id=str(owner.id),
                success=success,
                error=str(exc),
            )


@lru_cache
def get_audit_service() -> AuditService:
    """Create and cache audit service dependency."""
    return AuditService(session_factory=get_session_factory())
