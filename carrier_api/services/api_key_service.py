"""Business API key issuance, validation, and sliding-window rate limiting."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from uuid import UUID

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from carrier_api.config import get_settings
from carrier_api.core.api_keys import ApiKeyCore
from carrier_api.models.api_key import ApiKey, ApiKeyStatus, ApiKeyUsageLog
from carrier_api.models.user import User
from carrier_api.repositories import ApiKeyRepository, UsageLogRepository, UserRepository
from carrier_api.services.errors import (
    ApiKeyAllocationError,
    InvalidRequestError,
    NotFoundError,
    PermissionDeniedError,
)

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class IssuedApiKey:
    """Issuance result carrying the plaintext key exactly once."""

    key_id: UUID
    api_key: str
    key_prefix: str
    label: str
    rate_limit: int
    expires_at: datetime


@dataclass(frozen=True)
class ApiUsageStats:
    """Aggregate API usage for one owner."""

    total_requests: int
    active_keys: int
    total_keys: int
    requests_per_key: dict[str, int]
    average_requests_per_key: int
    requests_last_window: int


class ApiKeyService:
    """Service for API key lifecycle, authentication, and usage accounting."""

    def __init__(
        self,
        core: ApiKeyCore,
        api_keys: ApiKeyRepository,
        usage_logs: UsageLogRepository,
        users: UserRepository,
        default_rate_limit: int = 1000,
        ttl_days: int = 365,
        window_seconds: int = 3600,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._core = core
        self._api_keys = api_keys
        self._usage_logs = usage_logs
        self._users = users
        self._default_rate_limit = default_rate_limit
        self._ttl = timedelta(days=ttl_days)
        self._window = timedelta(seconds=window_seconds)
        self._now = now or _utcnow

    async def issue(
        self,
        db_session: AsyncSession,
        owner: User,
        label: str | None = None,
        description: str | None = None,
        rate_limit: int | None = None,
    ) -> IssuedApiKey:
        """Issue a key for a verified business owner and return the plaintext once."""
        if not owner.is_business:
            raise PermissionDeniedError("API keys can only be generated for business accounts.")
        if not owner.is_verified_business:
            raise PermissionDeniedError("Business must be verified before generating API keys.")
        if rate_limit is not None and rate_limit < 1:
            raise InvalidRequestError("Rate limit must be a positive number of requests.")

        raw_key = self._core.generate_raw_key()
        key_hash = self._core.hash_key(raw_key)
        if await self._api_keys.exists_by_hash(db_session, key_hash):
            # Single regeneration; the unique index rejects a repeat collision on insert.
            logger.warning("api_key_hash_collision", user_id=str(owner.id))
            raw_key = self._core.generate_raw_key()
            key_hash = self._core.hash_key(raw_key)

        issued_at = self._now()
        row = ApiKey(
            user_id=owner.id,
            key_hash=key_hash,
            key_prefix=self._core.key_prefix(raw_key),
            label=(label or "").strip() or f"API Key {issued_at.isoformat()}",
            description=description,
            status=ApiKeyStatus.ACTIVE,
            rate_limit=rate_limit if rate_limit is not None else self._default_rate_limit,
            requests_count=0,
            last_used_at=None,
            expires_at=issued_at + self._ttl,
        )
        try:
            await self._api_keys.add(db_session, row)
        except IntegrityError as exc:
            raise ApiKeyAllocationError("Could not allocate a unique API key.") from exc

        logger.info(
            "api_key_issued",
            user_id=str(owner.id),
            key_id=str(row.id),
            key_prefix=row.key_prefix,
            rate_limit=row.rate_limit,
        )
        return IssuedApiKey(
            key_id=row.id,
            api_key=raw_key,
            key_prefix=row.key_prefix,
            label=row.label,
            rate_limit=row.rate_limit,
            expires_at=issued_at + self._ttl,
        )

    async def validate(self, db_session: AsyncSession, raw_key: str | None) -> User | None:
        """Authenticate a presented key and return its owner, or None when rejected."""
        if raw_key is None or not self._core.is_valid_format(raw_key):
            return self._reject("invalid_format")

        key_hash = self._core.hash_key(raw_key)
        row = await self._api_keys.get_by_hash(db_session, key_hash)
        if row is None:
            return self._reject("unknown_key")
        if row.status != ApiKeyStatus.ACTIVE:
            return self._reject("inactive", key_prefix=row.key_prefix, status=row.status.value)

        if row.expires_at is not None and row.expires_at < self._now():
            row.status = ApiKeyStatus.EXPIRED
            await self._api_keys.save(db_session, row)
            return self._reject("expired", key_prefix=row.key_prefix)

        if await self._is_row_rate_limited(db_session, row):
            return self._reject("rate_limited", key_prefix=row.key_prefix)

        await self.record_usage(db_session, key_hash)
        return await self._users.get_by_id(db_session, row.user_id)

    def hash_key(self, raw_key: str) -> str:
        """Return the storage hash for a presented key."""
        return self._core.hash_key(raw_key)

    async def is_rate_limited(self, db_session: AsyncSession, key_hash: str) -> bool:
        """Return True when the key has used its hourly budget; unknown keys count as limited."""
        row = await self._api_keys.get_by_hash(db_session, key_hash)
        if row is None:
            return True
        return await self._is_row_rate_limited(db_session, row)

    async def record_usage(self, db_session: AsyncSession, key_hash: str) -> None:
        """Increment the cumulative request counter and last-used timestamp."""
        await self._api_keys.increment_usage(db_session, key_hash, used_at=self._now())

    async def record_usage_detailed(
        self,
        db_session: AsyncSession,
        key_hash: str,
        endpoint: str | None,
        method: str | None,
        ip_address: str | None,
        response_status: int | None,
        response_time_ms: int | None,
    ) -> None:
        """Append one usage log row feeding the sliding-window limiter."""
        await self._usage_logs.add(
            db_session,
            ApiKeyUsageLog(
                key_hash=key_hash,
                endpoint=endpoint[:255] if endpoint else endpoint,
                method=method,
                ip_address=ip_address,
                response_status=response_status,
                response_time_ms=response_time_ms,
                created_at=self._now(),
            ),
        )

    async def revoke(self, db_session: AsyncSession, key_id: UUID, owner: User) -> ApiKey:
        """Revoke an owned key; terminal keys are returned unchanged."""
        row = await self._api_keys.get_by_id(db_session, key_id, for_update=True)
        if row is None:
            raise NotFoundError("API key not found.")
        if row.user_id != owner.id:
            raise PermissionDeniedError("You don't have permission to revoke this API key.")
        if row.status not in (ApiKeyStatus.REVOKED, ApiKeyStatus.EXPIRED):
            row.status = ApiKeyStatus.REVOKED
            await self._api_keys.save(db_session, row)
            logger.info("api_key_revoked", user_id=str(owner.id), key_id=str(row.id))
        return row

    async def list_keys(self, db_session: AsyncSession, owner: User) -> list[ApiKey]:
        """List keys owned by the account without exposing key material."""
        return await self._api_keys.list_by_owner(db_session, owner.id)

    async def usage_stats(self, db_session: AsyncSession, owner: User) -> ApiUsageStats:
        """Summarize request counters across the owner's keys."""
        keys = await self.list_keys(db_session, owner)
        total_requests = sum(int(key.requests_count or 0) for key in keys)
        requests_per_key: dict[str, int] = {}
        for key in keys:
            name = key.label or "Unnamed"
            requests_per_key[name] = requests_per_key.get(name, 0) + int(key.requests_count or 0)
        recent = await self._usage_logs.count_since_for_hashes(
            db_session,
            [key.key_hash for key in keys],
            since=self._now() - self._window,
        )
        return ApiUsageStats(
            total_requests=total_requests,
            active_keys=sum(1 for key in keys if key.status == ApiKeyStatus.ACTIVE),
            total_keys=len(keys),
            requests_per_key=requests_per_key,
            average_requests_per_key=total_requests // len(keys) if keys else 0,
            requests_last_window=recent,
        )

    async def _is_row_rate_limited(self, db_session: AsyncSession, row: ApiKey) -> bool:
        """Sliding-window check over usage logs with a lifetime-counter fallback."""
        since = self._now() - self._window
        requests_in_window = await self._usage_logs.count_since(db_session, row.key_hash, since)
        if requests_in_window == 0:
            return int(row.requests_count or 0) >= row.rate_limit
        return requests_in_window >= row.rate_limit

    @staticmethod
    def _reject(reason: str, **context: str) -> None:
        """Log a uniform rejection and return the absence signal."""
        logger.info("api_key_rejected", reason=reason, **context)
        return None


@lru_cache
def get_api_key_service() -> ApiKeyService:
    """Create and cache API key service dependency."""
    settings = get_settings()
    return ApiKeyService(
        core=ApiKeyCore(),
        api_keys=ApiKeyRepository(),
        usage_logs=UsageLogRepository(),
        users=UserRepository(),
        default_rate_limit=settings.api_keys.default_rate_limit_per_hour,
        ttl_days=settings.api_keys.ttl_days,
        window_seconds=settings.api_keys.window_seconds,
    )
