"""ORM model exports."""

from carrier_api.models.api_key import ApiKey, ApiKeyStatus, ApiKeyUsageLog
from carrier_api.models.audit_event import AuditActorType, AuditEvent
from carrier_api.models.user import BusinessVerificationStatus, User
from carrier_api.models.webhook import Webhook, WebhookStatus

__all__ = [
    "ApiKey",
    "ApiKeyStatus",
    "ApiKeyUsageLog",
    "AuditActorType",
    "AuditEvent",
    "BusinessVerificationStatus",
    "User",
    "Webhook",
    "WebhookStatus",
]
