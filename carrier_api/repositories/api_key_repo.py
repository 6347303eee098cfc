"""API key and usage log persistence."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from uuid import UUID

from sqlalchemy import exists, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from carrier_api.models.api_key import ApiKey, ApiKeyUsageLog


class ApiKeyRepository:
    """Repository for hashed API key rows."""

    async def get_by_hash(self, db_session: AsyncSession, key_hash: str) -> ApiKey | None:
        """Fetch API key row by its one-way hash."""
        result = await db_session.execute(select(ApiKey).where(ApiKey.key_hash == key_hash))
        return result.scalar_one_or_none()

    async def get_by_id(
        self, db_session: AsyncSession, key_id: UUID, for_update: bool = False
    ) -> ApiKey | None:
        """Fetch API key row by id."""
        statement = select(ApiKey).where(ApiKey.id == key_id)
        if for_update:
            statement = statement.with_for_update()
        result = await db_session.execute(statement)
        return result.scalar_one_or_none()

    async def exists_by_hash(self, db_session: AsyncSession, key_hash: str) -> bool:
        """Return True when a key with this hash is already stored."""
        result = await db_session.execute(select(exists().where(ApiKey.key_hash == key_hash)))
        return bool(result.scalar())

    async def list_by_owner(self, db_session: AsyncSession, user_id: UUID) -> list[ApiKey]:
        """List all keys owned by an account, newest first."""
        statement = (
            select(ApiKey).where(ApiKey.user_id == user_id).order_by(ApiKey.created_at.desc())
        )
        result = await db_session.execute(statement)
        return list(result.scalars().all())

    async def add(self, db_session: AsyncSession, row: ApiKey) -> ApiKey:
        """Insert a new key row and commit."""
        try:
            db_session.add(row)
            await db_session.flush()
        except Exception:
            await db_session.rollback()
            raise
        await db_session.commit()
        return row

    async def save(self, db_session: AsyncSession, row: ApiKey) -> ApiKey:
        """Persist in-place changes to a key row."""
        try:
            await db_session.flush()
        except Exception:
            await db_session.rollback()
            raise
        await db_session.commit()
        return row

    async def increment_usage(
        self, db_session: AsyncSession, key_hash: str, used_at: datetime
    ) -> None:
        """Atomically bump the request counter and last-used timestamp."""
        statement = (
            update(ApiKey)
            .where(ApiKey.key_hash == key_hash)
            .values(requests_count=ApiKey.requests_count + 1, last_used_at=used_at)
            .execution_options(synchronize_session=False)
        )
        await db_session.execute(statement)
        await db_session.commit()


class UsageLogRepository:
    """Repository for append-only API key usage logs."""

    async def add(self, db_session: AsyncSession, row: ApiKeyUsageLog) -> None:
        """Append one usage log row and commit."""
        db_session.add(row)
        await db_session.commit()

    async def count_since(self, db_session: AsyncSession, key_hash: str, since: datetime) -> int:
        """Count usage rows for one key hash at or after `since`."""
        statement = select(func.count(ApiKeyUsageLog.id)).where(
            ApiKeyUsageLog.key_hash == key_hash,
            ApiKeyUsageLog.created_at >= since,
        )
        result = await db_session.execute(statement)
        return int(result.scalar() or 0)

    async def count_since_for_hashes(
        self, db_session: AsyncSession, key_hashes: Sequence[str], since: datetime
    ) -> int:
        """Count usage rows across several key hashes at or after `since`."""
        if not key_hashes:
            return 0
        statement = select(func.count(ApiKeyUsageLog.id)).where(
            ApiKeyUsageLog.key_hash.in_(list(key_hashes)),
            ApiKeyUsageLog.created_at >= since,
        )
        result = await db_session.execute(statement)
        return int(result.scalar() or 0)
