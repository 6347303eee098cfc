"""Async HTTP client for the business API."""

from __future__ import annotations

from typing import Any
from uuid import UUID

import httpx

from carrier_sdk.exceptions import CarrierServiceResponseError, CarrierServiceUnavailableError
from carrier_sdk.types import (
    ApiKeySummary,
    ApiUsage,
    IssuedApiKey,
    WebhookSubscription,
    WebhookTestResult,
)

DEFAULT_TIMEOUT = httpx.Timeout(connect=2.0, read=10.0, write=5.0, pool=5.0)
API_KEY_HEADER = "X-API-Key"


class CarrierClient:
    """Async client for API key and webhook management with an API key."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: httpx.Timeout | float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Create client with sane defaults and optional injected transport."""
        self._api_key = api_key
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout or DEFAULT_TIMEOUT,
        )

    async def issue_api_key(
        self,
        label: str | None = None,
        description: str | None = None,
        rate_limit: int | None = None,
    ) -> IssuedApiKey:
        """Issue a new key; the returned `api_key` is never retrievable again."""
        body = {"label": label, "description": description, "rate_limit": rate_limit}
        response = await self._request("POST", "/api/business/keys", json=body)
        return self._json_object(response)  # type: ignore[return-value]

    async def list_api_keys(self) -> list[ApiKeySummary]:
        response = await self._request("GET", "/api/business/keys")
        return self._json_list(response)  # type: ignore[return-value]

    async def revoke_api_key(self, key_id: UUID | str) -> None:
        await self._request("DELETE", f"/api/business/keys/{key_id}")

    async def usage(self) -> ApiUsage:
        """Fetch aggregate request counts across the caller's keys."""
        response = await self._request("GET", "/api/business/analytics/usage")
        return self._json_object(response)  # type: ignore[return-value]

    async def create_webhook(
        self,
        url: str,
        events: list[str] | None = None,
        description: str = "",
        secret: str | None = None,
    ) -> WebhookSubscription:
        """Subscribe a URL; the response includes the signing secret."""
        body: dict[str, Any] = {"url": url, "events": events or ["*"], "description": description}
        if secret is not None:
            body["secret"] = secret
        response = await self._request("POST", "/api/business/webhooks", json=body)
        return self._json_object(response)  # type: ignore[return-value]

    async def list_webhooks(self) -> list[WebhookSubscription]:
        response = await self._request("GET", "/api/business/webhooks")
        return self._json_list(response)  # type: ignore[return-value]

    async def update_webhook(
        self,
        webhook_id: UUID | str,
        url: str,
        events: list[str],
        description: str = "",
    ) -> WebhookSubscription:
        body = {"url": url, "events": events, "description": description}
        response = await self._request("PUT", f"/api/business/webhooks/{webhook_id}", json=body)
        return self._json_object(response)  # type: ignore[return-value]

    async def delete_webhook(self, webhook_id: UUID | str) -> None:
        await self._request("DELETE", f"/api/business/webhooks/{webhook_id}")

    async def test_webhook(self, webhook_id: UUID | str) -> WebhookTestResult:
        """Ask the API to send a synthetic delivery and report the outcome."""
        response = await self._request("POST", f"/api/business/webhooks/{webhook_id}/test")
        return self._json_object(response)  # type: ignore[return-value]

    async def aclose(self) -> None:
        """Close underlying HTTP client if owned by this instance."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> CarrierClient:
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        """Exit async context manager and close managed resources."""
        del exc_type, exc, tb
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Execute request and normalize upstream failures."""
        headers = {API_KEY_HEADER: self._api_key}
        try:
            response = await self._client.request(method, path, headers=headers, **kwargs)
        except httpx.RequestError as exc:
            raise CarrierServiceUnavailableError("Business API unavailable.") from exc

        if response.status_code >= 500:
            raise CarrierServiceUnavailableError("Business API unavailable.")
        if response.status_code >= 400:
            detail, code = self._error_fields(response)
            raise CarrierServiceResponseError(detail, response.status_code, code)
        return response

    @staticmethod
    def _error_fields(response: httpx.Response) -> tuple[str, str | None]:
        """Extract `{detail, code}` from an error body when present."""
        fallback = f"Business API request failed with status {response.status_code}."
        try:
            payload = response.json()
        except ValueError:
            return fallback, None
        if not isinstance(payload, dict):
            return fallback, None
        code = payload.get("code")
        return str(payload.get("detail", fallback)), str(code) if code is not None else None

    @staticmethod
    def _json_object(response: httpx.Response) -> dict[str, Any]:
        """Return response JSON as object."""
        try:
            payload = response.json()
        except ValueError as exc:
            raise CarrierServiceResponseError(
                "Business API returned invalid JSON.", response.status_code
            ) from exc
        if not isinstance(payload, dict):
            raise CarrierServiceResponseError(
                "Business API returned invalid JSON object.", response.status_code
            )
        return payload

    @staticmethod
    def _json_list(response: httpx.Response) -> list[dict[str, Any]]:
        """Return response JSON as a list of objects."""
        try:
            payload = response.json()
        except ValueError as exc:
            raise CarrierServiceResponseError(
                "Business API returned invalid JSON.", response.status_code
            ) from exc
        if not isinstance(payload, list) or not all(isinstance(item, dict) for item in payload):
            raise CarrierServiceResponseError(
                "Business API returned invalid JSON list.", response.status_code
            )
        return payload
