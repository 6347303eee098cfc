"""Shared FastAPI dependency helpers."""

from collections.abc import AsyncGenerator

from fastapi import HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from carrier_api.db.session import get_db_session
from carrier_api.models.user import User


async def get_database_session() -> AsyncGenerator[AsyncSession, None]:
    """Expose the request-scoped async database session dependency."""
    async for session in get_db_session():
        yield session


def get_current_owner(request: Request) -> User:
    """Return the account authenticated by the API key middleware."""
    owner = getattr(request.state, "owner", None)
    if owner is None:
        raise HTTPException(
            status_code=401,
            detail={"detail": "API key is required.", "code": "api_key_required"},
        )
    return owner
