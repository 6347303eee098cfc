"""Seed a verified business account and print an API key for Locust scenarios."""

from __future__ import annotations

import argparse
import asyncio

from sqlalchemy import func, select

from carrier_api.db.session import get_session_factory
from carrier_api.models.user import BusinessVerificationStatus, User
from carrier_api.services.api_key_service import get_api_key_service


async def seed_business(email: str, rate_limit: int) -> None:
    """Create or reactivate the load-test business account and issue a key."""
    session_factory = get_session_factory()

    async with session_factory() as session:
        statement = select(User).where(func.lower(User.email) == email.lower())
        owner = (await session.execute(statement)).scalar_one_or_none()
        if owner is None:
            owner = User(email=email)
            session.add(owner)
        owner.is_active = True
        owner.is_business = True
        owner.business_verification_status = BusinessVerificationStatus.VERIFIED
        await session.commit()

        issued = await get_api_key_service().issue(
            session, owner, label="loadtest", rate_limit=rate_limit
        )
        print(f"export CARRIER_LOAD_API_KEY={issued.api_key}")


def _parse_args() -> argparse.Namespace:
    """Parse CLI options."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--email", default="loadtest@example.com")
    parser.add_argument("--rate-limit", type=int, default=100_000)
    return parser.parse_args()


def main() -> None:
    """Entrypoint."""
    args = _parse_args()
    asyncio.run(seed_business(email=args.email, rate_limit=args.rate_limit))


if __name__ == "__main__":
    main()
