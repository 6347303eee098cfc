"""Service-layer error hierarchy mapped to HTTP responses by the exception handlers."""

from __future__ import annotations


class ServiceError(Exception):
    """Raised for business API service failures."""

    code = "invalid_request"
    status_code = 400

    def __init__(self, detail: str, code: str | None = None, status_code: int | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code


class InvalidRequestError(ServiceError):
    """Raised when a request is well-formed but semantically unusable."""


class PermissionDeniedError(ServiceError):
    """Raised when the caller does not own the record or lacks business standing."""

    code = "permission_denied"
    status_code = 403


class NotFoundError(ServiceError):
    """Raised when a referenced API key or webhook does not exist."""

    code = "not_found"
    status_code = 404


class ApiKeyAllocationError(ServiceError):
    """Raised when a freshly generated API key cannot be stored uniquely."""

    code = "key_generation_failed"
    status_code = 503


class BackendUnavailableError(ServiceError):
    """Raised when a backing store the service cannot run without is unreachable."""

    code = "service_unavailable"
    status_code = 503
