"""API key authentication for the business API surface."""

from __future__ import annotations

from time import perf_counter

import structlog
from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from carrier_api.config import get_settings
from carrier_api.db.session import get_session_factory
from carrier_api.services.api_key_service import ApiKeyService, get_api_key_service
from carrier_api.services.audit_service import extract_client_ip

logger = structlog.get_logger(__name__)

API_KEY_HEADER = "X-API-Key"
LEGACY_API_KEY_HEADER = "API-Key"
_BEARER_PREFIX = "bearer "


def extract_api_key(request: Request) -> str | None:
    """Read the key from X-API-Key, then Authorization: Bearer, then API-Key."""
    value = request.headers.get(API_KEY_HEADER, "").strip()
    if value:
        return value

    authorization = request.headers.get("authorization", "").strip()
    if authorization.lower().startswith(_BEARER_PREFIX):
        token = authorization[len(_BEARER_PREFIX) :].strip()
        if token:
            return token

    value = request.headers.get(LEGACY_API_KEY_HEADER, "").strip()
    return value or None


def _unauthorized(detail: str, code: str) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={"detail": detail, "code": code},
        headers={"WWW-Authenticate": "ApiKey"},
    )


class ApiKeyAuthMiddleware(BaseHTTPMiddleware):
    """Authenticate business API requests and log per-key usage after the response."""

    def __init__(
        self,
        app,
        api_key_service: ApiKeyService | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        protected_path_prefix: str | None = None,
    ) -> None:
        super().__init__(app)
        self._service = api_key_service or get_api_key_service()
        self._session_factory = session_factory or get_session_factory()
        if protected_path_prefix is None:
            protected_path_prefix = get_settings().api_keys.protected_path_prefix
        self._prefix = protected_path_prefix

    async def dispatch(self, request: Request, call_next) -> Response:
        """Reject unauthenticated business calls and expose the owner on request state."""
        if not request.url.path.startswith(self._prefix):
            return await call_next(request)

        raw_key = extract_api_key(request)
        if raw_key is None:
            return _unauthorized("API key is required.", "api_key_required")

        async with self._session_factory() as db_session:
            owner = await self._service.validate(db_session, raw_key)
        if owner is None:
            return _unauthorized("Invalid, expired or rate-limited API key.", "invalid_api_key")

        key_hash = self._service.hash_key(raw_key)
        request.state.owner = owner
        request.state.api_key_hash = key_hash
        structlog.contextvars.bind_contextvars(owner_id=str(owner.id))

        start = perf_counter()
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("owner_id")

        await self._record_usage(
            request,
            key_hash=key_hash,
            status_code=response.status_code,
            response_time_ms=int((perf_counter() - start) * 1000),
        )
        return response

    async def _record_usage(
        self, request: Request, key_hash: str, status_code: int, response_time_ms: int
    ) -> None:
        """Append the usage row; persistence failures are logged, never surfaced."""
        try:
            async with self._session_factory() as db_session:
                await self._service.record_usage_detailed(
                    db_session,
                    key_hash=key_hash,
                    endpoint=request.url.path,
                    method=request.method,
                    ip_address=extract_client_ip(request),
                    response_status=status_code,
                    response_time_ms=response_time_ms,
                )
        except SQLAlchemyError as exc:
            logger.error("api_key_usage_log_failed", path=request.url.path, error=str(exc))
