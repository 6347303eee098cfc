"""Public SDK exports."""

from carrier_sdk.client import CarrierClient
from carrier_sdk.dependencies import webhook_event_dependency
from carrier_sdk.webhooks import compute_signature, parse_event, verify_signature

__all__ = [
    "CarrierClient",
    "compute_signature",
    "parse_event",
    "verify_signature",
    "webhook_event_dependency",
]
