"""Unit tests for webhook secrets, event sets and signing."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
from datetime import UTC, datetime

from carrier_api.core.webhooks import WILDCARD_EVENT, WebhookCore, WebhookEvent


def test_generate_secret_is_unpadded_urlsafe_32_bytes() -> None:
    core = WebhookCore()
    secret = core.generate_secret()
    assert len(secret) == 43
    assert "=" not in secret and "+" not in secret and "/" not in secret
    assert core.generate_secret() != secret


def test_event_sets_round_trip_through_storage_form() -> None:
    core = WebhookCore()
    events = core.normalize_events([" shipment.created", "payment.failed", "", "shipment.created"])

    stored = core.events_to_storage(events)

    assert stored == "payment.failed,shipment.created"
    assert core.events_from_storage(stored) == events
    assert core.events_from_storage(None) == frozenset()
    assert core.events_from_storage("") == frozenset()


def test_matches_named_event_or_wildcard() -> None:
    core = WebhookCore()
    named = frozenset({WebhookEvent.SHIPMENT_CREATED.value})

    assert core.matches(named, "shipment.created") is True
    assert core.matches(named, "shipment.delivered") is False
    assert core.matches(frozenset({WILDCARD_EVENT}), "anything.at_all") is True
    assert core.matches(frozenset(), "shipment.created") is False


def test_envelope_is_canonical_json_and_signature_is_hmac_of_body() -> None:
    core = WebhookCore()
    timestamp = datetime(2026, 10, 19, 8, 30, tzinfo=UTC)
    envelope = core.build_envelope(
        "shipment.updated", {"tracking": "TRK1", "status": "in_transit"}, timestamp
    )

    body = core.serialize_envelope(envelope)

    assert body == (
        b'{"data":{"status":"in_transit","tracking":"TRK1"},'
        b'"event":"shipment.updated","timestamp":"2026-10-19T08:30:00+00:00"}'
    )
    assert json.loads(body)["event"] == "shipment.updated"
    expected = base64.b64encode(hmac.new(b"s3cret", body, hashlib.sha256).digest()).decode()
    assert core.sign(body, "s3cret") == expected
    assert core.sign(body, "other") != expected


def test_event_names_are_ascii_tokens_without_delimiter() -> None:
    core = WebhookCore()

    assert core.is_valid_event_name("shipment.delivered") is True
    assert core.is_valid_event_name("fleet:vehicle-assigned_v2") is True
    assert core.is_valid_event_name(WILDCARD_EVENT) is True
    assert core.is_valid_event_name("envío.creado") is False
    assert core.is_valid_event_name("a,b") is False
    assert core.is_valid_event_name("shipment.created\n") is False
    assert core.is_valid_event_name("") is False
