"""Webhook secret generation, event-set handling, and payload signing."""

from __future__ import annotations

import base64
import hmac
import json
import re
import secrets
from collections.abc import Iterable, Mapping
from datetime import datetime
from enum import Enum
from hashlib import sha256
from typing import Any

WILDCARD_EVENT = "*"
SIGNATURE_HEADER = "X-Webhook-Signature"
EVENT_HEADER = "X-Webhook-Event"

EventSet = frozenset[str]

_EVENT_NAME_PATTERN = re.compile(r"[A-Za-z0-9_.:\-]{1,100}")


class WebhookEvent(str, Enum):
    """Domain events businesses can subscribe to."""

    SHIPMENT_CREATED = "shipment.created"
    SHIPMENT_UPDATED = "shipment.updated"
    SHIPMENT_DELIVERED = "shipment.delivered"
    SHIPMENT_PICKED_UP = "shipment.picked_up"
    PAYMENT_COMPLETED = "payment.completed"
    PAYMENT_FAILED = "payment.failed"
    WEBHOOK_TEST = "webhook.test"


EVENT_DESCRIPTIONS: dict[WebhookEvent, str] = {
    WebhookEvent.SHIPMENT_CREATED: "A new shipment was created.",
    WebhookEvent.SHIPMENT_UPDATED: "A shipment changed status.",
    WebhookEvent.SHIPMENT_DELIVERED: "A shipment was delivered.",
    WebhookEvent.SHIPMENT_PICKED_UP: "A shipment was picked up.",
    WebhookEvent.PAYMENT_COMPLETED: "A payment completed.",
    WebhookEvent.PAYMENT_FAILED: "A payment failed.",
    WebhookEvent.WEBHOOK_TEST: "Synthetic event sent by the webhook test endpoint.",
}


class WebhookCore:
    """Core webhook operations shared by the registry and the dispatcher."""

    _SECRET_BYTES = 32
    _DELIMITER = ","

    def generate_secret(self) -> str:
        """Generate an unpadded URL-safe base64 secret from 32 random bytes."""
        return secrets.token_urlsafe(self._SECRET_BYTES)

    def normalize_events(self, events: Iterable[str]) -> EventSet:
        """Strip, drop blanks, and deduplicate subscribed event names."""
        return frozenset(name.strip() for name in events if name and name.strip())

    def is_valid_event_name(self, name: str) -> bool:
        """Return True for ASCII dotted names that fit the delimited storage form."""
        return name == WILDCARD_EVENT or _EVENT_NAME_PATTERN.fullmatch(name) is not None

    def events_to_storage(self, events: EventSet) -> str:
        """Serialize an event set into its delimited storage form."""
        return self._DELIMITER.join(sorted(events))

    def events_from_storage(self, stored: str | None) -> EventSet:
        """Parse the delimited storage form into an event set."""
        if not stored:
            return frozenset()
        return self.normalize_events(stored.split(self._DELIMITER))

    def matches(self, events: EventSet, event_type: str) -> bool:
        """Return True when the set names the event or the wildcard."""
        return event_type in events or WILDCARD_EVENT in events

    def build_envelope(
        self, event_type: str, payload: Mapping[str, Any], timestamp: datetime
    ) -> dict[str, Any]:
        """Build the delivery envelope for one event."""
        return {"event": event_type, "timestamp": timestamp.isoformat(), "data": dict(payload)}

    def serialize_envelope(self, envelope: Mapping[str, Any]) -> bytes:
        """Serialize envelope to canonical JSON bytes (sorted keys, compact separators)."""
        return json.dumps(
            envelope,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            default=str,
        ).encode("utf-8")

    def sign(self, body: bytes, secret: str) -> str:
        """Return base64 HMAC-SHA256 of the exact body bytes keyed by the secret."""
        mac = hmac.new(secret.encode("utf-8"), body, sha256)
        return base64.b64encode(mac.digest()).decode("ascii")
