"""Webhook subscription persistence."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from carrier_api.models.webhook import Webhook, WebhookStatus


class WebhookRepository:
    """Repository for webhook rows and their delivery counters."""

    async def get_by_id(self, db_session: AsyncSession, webhook_id: UUID) -> Webhook | None:
        """Fetch webhook by id."""
        result = await db_session.execute(select(Webhook).where(Webhook.id == webhook_id))
        return result.scalar_one_or_none()

    async def list_by_owner(self, db_session: AsyncSession, user_id: UUID) -> list[Webhook]:
        """List all webhooks owned by an account, newest first."""
        statement = (
            select(Webhook).where(Webhook.user_id == user_id).order_by(Webhook.created_at.desc())
        )
        result = await db_session.execute(statement)
        return list(result.scalars().all())

    async def list_active_by_owner(
        self, db_session: AsyncSession, user_id: UUID
    ) -> list[Webhook]:
        """List ACTIVE webhooks owned by an account."""
        statement = select(Webhook).where(
            Webhook.user_id == user_id,
            Webhook.status == WebhookStatus.ACTIVE,
        )
        result = await db_session.execute(statement)
        return list(result.scalars().all())

    async def add(self, db_session: AsyncSession, row: Webhook) -> Webhook:
        """Insert a new webhook row and commit."""
        try:
            db_session.add(row)
            await db_session.flush()
        except Exception:
            await db_session.rollback()
            raise
        await db_session.commit()
        return row

    async def save(self, db_session: AsyncSession, row: Webhook) -> Webhook:
        """Persist in-place changes to a webhook row."""
        try:
            await db_session.flush()
        except Exception:
            await db_session.rollback()
            raise
        await db_session.commit()
        return row

    async def delete(self, db_session: AsyncSession, row: Webhook) -> None:
        """Hard-delete a webhook row."""
        await db_session.delete(row)
        await db_session.commit()

    async def record_delivery(
        self,
        db_session: AsyncSession,
        webhook_id: UUID,
        success: bool,
        triggered_at: datetime,
    ) -> None:
        """Atomically bump exactly one outcome counter and stamp the trigger time."""
        if success:
            values = {"success_count": Webhook.success_count + 1}
        else:
            values = {"failure_count": Webhook.failure_count + 1}
        statement = (
            update(Webhook)
            .where(Webhook.id == webhook_id)
            .values(last_triggered_at=triggered_at, **values)
            .execution_options(synchronize_session=False)
        )
        await db_session.execute(statement)
        await db_session.commit()
