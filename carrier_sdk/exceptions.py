"""SDK exception hierarchy."""

from __future__ import annotations


class SDKError(Exception):
    """Base class for all SDK-specific exceptions."""


class CarrierServiceUnavailableError(SDKError):
    """Raised when the business API is temporarily unreachable."""


class CarrierServiceResponseError(SDKError):
    """Raised when the business API rejects a call or returns unexpected data."""

    def __init__(self, detail: str, status_code: int | None = None, code: str | None = None) -> None:
        """Initialize with optional HTTP status and machine-readable code."""
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code
        self.code = code


class WebhookVerificationError(SDKError):
    """Raised when an inbound webhook fails signature or payload checks."""

    def __init__(self, detail: str, code: str) -> None:
        """Initialize with user-facing detail and machine-readable code."""
        super().__init__(detail)
        self.detail = detail
        self.code = code
