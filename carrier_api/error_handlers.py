"""Global exception handlers enforcing API error response contracts."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from carrier_api.services.audit_service import extract_client_ip
from carrier_api.services.errors import ServiceError

VALID_ERROR_CODES = {
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
}

_DEFAULT_ERROR_CODE_BY_STATUS: dict[int, str] = {
    400: "invalid_request",
    401: "invalid_api_key",
    403: "permission_denied",
    404: "not_found",
    405: "method_not_allowed",
    422: "validation_failed",
    429: "rate_limited",
    503: "service_unavailable",
}

_BUSINESS_PATH_PREFIX = "/api/business/"

logger = structlog.get_logger(__name__)


def _error_response(status_code: int, detail: str, code: str) -> JSONResponse:
    """Build standardized JSON error payload."""
    return JSONResponse(status_code=status_code, content={"detail": detail, "code": code})


def _resolve_error_code(status_code: int, raw_code: str | None) -> str:
    """Resolve a valid machine-readable error code."""
    if raw_code in VALID_ERROR_CODES:
        return raw_code
    if status_code >= 500 and status_code not in _DEFAULT_ERROR_CODE_BY_STATUS:
        return "internal_error"
    return _DEFAULT_ERROR_CODE_BY_STATUS.get(status_code, "invalid_request")


def _extract_detail_and_code(detail: Any) -> tuple[str, str | None]:
    """Normalize exception detail payload into message and optional code."""
    if isinstance(detail, dict):
        raw_detail = detail.get("detail", "Request failed.")
        raw_code = detail.get("code")
        return str(raw_detail), str(raw_code) if raw_code is not None else None
    if isinstance(detail, str):
        return detail, None
    return "Request failed.", None


def _sanitize_detail(detail: str, status_code: int, environment: str) -> str:
    """Hide internal failure details outside development."""
    if environment != "development" and status_code >= 500:
        return "Internal server error."
    return detail


def _log_business_failure(
    request: Request,
    status_code: int,
    detail: str,
    code: str,
) -> None:
    """Emit WARNING-level log for client errors on the business API."""
    if status_code < 400 or status_code >= 500:
        return
    if not request.url.path.startswith(_BUSINESS_PATH_PREFIX):
        return

    owner = getattr(request.state, "owner", None)
    logger.warning(
        "business_api_failure",
        correlation_id=getattr(
            request.state,
            "correlation_id",
            request.headers.get("x-correlation-id", "unknown"),
        ),
        owner_id=str(owner.id) if owner is not None else None,
        ip_address=extract_client_ip(request),
        status_code=status_code,
        code=code,
        detail=detail,
        path=request.url.path,
        method=request.method,
    )


def register_exception_handlers(app: FastAPI, environment: str) -> None:
    """Register global exception handlers enforcing error shape contract."""

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError) -> JSONResponse:
        """Map service-layer failures to their declared status and code."""
        detail = _sanitize_detail(exc.detail, exc.status_code, environment)
        _log_business_failure(request, status_code=exc.status_code, detail=detail, code=exc.code)
        return _error_response(status_code=exc.status_code, detail=detail, code=exc.code)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Normalize framework HTTP exceptions to contract payload."""
        raw_detail, raw_code = _extract_detail_and_code(exc.detail)
        code = _resolve_error_code(exc.status_code, raw_code)
        detail = _sanitize_detail(raw_detail, exc.status_code, environment)
        _log_business_failure(request, status_code=exc.status_code, detail=detail, code=code)
        return _error_response(status_code=exc.status_code, detail=detail, code=code)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_exception(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Map request validation errors to standardized payload."""
        detail = "Invalid request payload."
        if environment == "development":
            errors = exc.errors()
            if errors:
                detail = f"Invalid request payload: {errors[0].get('msg', 'validation error')}."
        code = "validation_failed"
        _log_business_failure(request, status_code=422, detail=detail, code=code)
        return _error_response(status_code=422, detail=detail, code=code)

    @app.exception_handler(Exception)
    async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
        """Mask internal errors and enforce contract payload."""
        logger.error(
            "unhandled_exception",
            correlation_id=getattr(
                request.state,
                "correlation_id",
                request.headers.get("x-correlation-id", "unknown"),
            ),
            path=request.url.path,
            method=request.method,
            error=str(exc),
        )
        detail = _sanitize_detail(str(exc), 500, environment)
        return _error_response(status_code=500, detail=detail, code="internal_error")
