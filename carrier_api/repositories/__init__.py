"""Repository layer for database operations."""

from carrier_api.repositories.api_key_repo import ApiKeyRepository, UsageLogRepository
from carrier_api.repositories.user_repo import UserRepository
from carrier_api.repositories.webhook_repo import WebhookRepository

__all__ = ["ApiKeyRepository", "UsageLogRepository", "UserRepository", "WebhookRepository"]
