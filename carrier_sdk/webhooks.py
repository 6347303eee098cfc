"""Receiver-side verification of signed webhook deliveries.

Deliveries carry `X-Webhook-Signature`, the base64 HMAC-SHA256 of the exact
request body keyed by the subscription secret. Verify against the raw bytes
received; re-serializing the parsed JSON can change the byte sequence.
"""

from __future__ import annotations

import base64
import hmac
import json
from hashlib import sha256

from carrier_sdk.exceptions import WebhookVerificationError
from carrier_sdk.types import WebhookEnvelope

SIGNATURE_HEADER = "X-Webhook-Signature"
EVENT_HEADER = "X-Webhook-Event"


def _as_bytes(body: bytes | str) -> bytes:
    return body.encode("utf-8") if isinstance(body, str) else body


def compute_signature(body: bytes | str, secret: str) -> str:
    """Return the base64 HMAC-SHA256 signature for a body."""
    mac = hmac.new(secret.encode("utf-8"), _as_bytes(body), sha256)
    return base64.b64encode(mac.digest()).decode("ascii")


def verify_signature(body: bytes | str, signature: str | None, secret: str) -> bool:
    """Return True when the signature header matches the body in constant time."""
    if not signature:
        return False
    try:
        presented = signature.strip().encode("ascii")
    except UnicodeEncodeError:
        return False
    expected = compute_signature(body, secret)
    return hmac.compare_digest(expected.encode("ascii"), presented)


def parse_event(body: bytes | str, signature: str | None, secret: str) -> WebhookEnvelope:
    """Verify a delivery and return its decoded envelope."""
    if not signature:
        raise WebhookVerificationError("Webhook signature header is missing.", "missing_signature")
    if not verify_signature(body, signature, secret):
        raise WebhookVerificationError("Webhook signature does not match.", "invalid_signature")

    try:
        payload = json.loads(_as_bytes(body))
    except ValueError as exc:
        raise WebhookVerificationError("Webhook body is not valid JSON.", "invalid_payload") from exc
    if (
        not isinstance(payload, dict)
        or not isinstance(payload.get("event"), str)
        or not isinstance(payload.get("data"), dict)
    ):
        raise WebhookVerificationError("Webhook body is not an event envelope.", "invalid_payload")
    return {
        "event": payload["event"],
        "timestamp": str(payload.get("timestamp", "")),
        "data": payload["data"],
    }
