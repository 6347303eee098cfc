"""Account lookups used to resolve API key and webhook owners."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from carrier_api.models.user import User


class UserRepository:
    """Repository for owner account reads."""

    async def get_by_id(self, db_session: AsyncSession, user_id: UUID) -> User | None:
        """Fetch an active account by id."""
        statement = select(User).where(User.id == user_id, User.is_active.is_(True))
        result = await db_session.execute(statement)
        return result.scalar_one_or_none()

    async def get_by_email(self, db_session: AsyncSession, email: str) -> User | None:
        """Fetch an active account by case-insensitive email."""
        statement = select(User).where(
            func.lower(User.email) == email.strip().lower(),
            User.is_active.is_(True),
        )
        result = await db_session.execute(statement)
        return result.scalar_one_or_none()
