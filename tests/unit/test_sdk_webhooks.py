"""Unit tests for SDK webhook verification helpers and dependency."""

from __future__ import annotations

import json
from typing import Annotated

import pytest
from fastapi import Depends, FastAPI
from httpx import ASGITransport, AsyncClient

from carrier_sdk.dependencies import webhook_event_dependency
from carrier_sdk.exceptions import WebhookVerificationError
from carrier_sdk.types import WebhookEnvelope
from carrier_sdk.webhooks import compute_signature, parse_event, verify_signature

_SECRET = "receiver-secret"
_BODY = b'{"data":{"tracking":"TRK1"},"event":"shipment.created","timestamp":"2026-10-19T00:00:00+00:00"}'


def test_verify_signature_accepts_exact_body_only() -> None:
    signature = compute_signature(_BODY, _SECRET)

    assert verify_signature(_BODY, signature, _SECRET) is True
    assert verify_signature(_BODY.decode(), signature, _SECRET) is True
    assert verify_signature(_BODY + b" ", signature, _SECRET) is False
    assert verify_signature(_BODY, None, _SECRET) is False
    assert verify_signature(_BODY, "not-base64-ü", _SECRET) is False


def test_verify_signature_does_not_strip_non_ascii_characters() -> None:
    signature = compute_signature(_BODY, _SECRET)
    padded = signature[:5] + "é" + signature[5:]

    assert verify_signature(_BODY, padded, _SECRET) is False
    assert verify_signature(_BODY, f" {signature} ", _SECRET) is True


def test_parse_event_returns_envelope_and_rejects_tampering() -> None:
    envelope = parse_event(_BODY, compute_signature(_BODY, _SECRET), _SECRET)
    assert envelope["event"] == "shipment.created"
    assert envelope["data"] == {"tracking": "TRK1"}

    with pytest.raises(WebhookVerificationError) as missing:
        parse_event(_BODY, "", _SECRET)
    assert missing.value.code == "missing_signature"

    with pytest.raises(WebhookVerificationError) as tampered:
        parse_event(_BODY.replace(b"TRK1", b"TRK2"), compute_signature(_BODY, _SECRET), _SECRET)
    assert tampered.value.code == "invalid_signature"

    not_envelope = json.dumps([1, 2]).encode()
    with pytest.raises(WebhookVerificationError) as invalid:
        parse_event(not_envelope, compute_signature(not_envelope, _SECRET), _SECRET)
    assert invalid.value.code == "invalid_payload"


_verified_event = webhook_event_dependency(lambda: _SECRET)


def _build_app() -> FastAPI:
    app = FastAPI()

    @app.post("/hooks/carrier")
    async def receive(
        event: Annotated[WebhookEnvelope, Depends(_verified_event)],
    ) -> dict[str, str]:
        return {"received": event["event"]}

    return app


@pytest.mark.asyncio
async def test_dependency_accepts_signed_delivery_and_rejects_forgery() -> None:
    async with AsyncClient(
        transport=ASGITransport(app=_build_app()), base_url="http://testserver"
    ) as client:
        accepted = await client.post(
            "/hooks/carrier",
            content=_BODY,
            headers={"X-Webhook-Signature": compute_signature(_BODY, _SECRET)},
        )
        forged = await client.post(
            "/hooks/carrier",
            content=_BODY,
            headers={"X-Webhook-Signature": compute_signature(_BODY, "guess")},
        )

    assert accepted.status_code == 200
    assert accepted.json() == {"received": "shipment.created"}
    assert forged.status_code == 401
    assert forged.json()["detail"]["code"] == "invalid_signature"
