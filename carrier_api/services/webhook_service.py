"""Webhook subscription management for business accounts."""

from __future__ import annotations

from collections.abc import Iterable
from functools import lru_cache
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from carrier_api.core.webhooks import EventSet, WebhookCore, WebhookEvent
from carrier_api.models.user import User
from carrier_api.models.webhook import Webhook, WebhookStatus
from carrier_api.repositories import WebhookRepository
from carrier_api.services.errors import (
    InvalidRequestError,
    NotFoundError,
    PermissionDeniedError,
)
from carrier_api.services.webhook_dispatcher import WebhookDispatcher, get_webhook_dispatcher

logger = structlog.get_logger(__name__)

_TEST_MESSAGE = "This is a test webhook"


class WebhookService:
    """Owner-scoped create, update, delete, list and test of webhook subscriptions."""

    def __init__(
        self,
        core: WebhookCore,
        webhooks: WebhookRepository,
        dispatcher: WebhookDispatcher,
    ) -> None:
        self._core = core
        self._webhooks = webhooks
        self._dispatcher = dispatcher

    async def subscribe(
        self,
        db_session: AsyncSession,
        owner: User,
        url: str,
        events: Iterable[str],
        description: str | None = None,
        secret: str | None = None,
    ) -> Webhook:
        """Create an ACTIVE subscription, generating a secret when none is supplied."""
        if not owner.is_business:
            raise PermissionDeniedError("Webhooks can only be created for business accounts.")
        event_set = self._normalized_events(events)

        row = Webhook(
            user_id=owner.id,
            url=url,
            secret=secret or self._core.generate_secret(),
            status=WebhookStatus.ACTIVE,
            events=self._core.events_to_storage(event_set),
            description=description,
            success_count=0,
            failure_count=0,
            last_triggered_at=None,
        )
        await self._webhooks.add(db_session, row)
        logger.info(
            "webhook_created",
            user_id=str(owner.id),
            webhook_id=str(row.id),
            events=sorted(event_set),
        )
        return row

    async def update(
        self,
        db_session: AsyncSession,
        webhook_id: UUID,
        owner: User,
        url: str,
        events: Iterable[str],
        description: str | None = None,
    ) -> Webhook:
        """Replace URL, events and description; secret and status are left as is."""
        row = await self._get_owned_webhook(db_session, webhook_id, owner, action="update")
        event_set = self._normalized_events(events)

        row.url = url
        row.events = self._core.events_to_storage(event_set)
        row.description = description
        await self._webhooks.save(db_session, row)
        logger.info("webhook_updated", user_id=str(owner.id), webhook_id=str(row.id))
        return row

    async def delete(self, db_session: AsyncSession, webhook_id: UUID, owner: User) -> None:
        """Hard-delete an owned subscription."""
        row = await self._get_owned_webhook(db_session, webhook_id, owner, action="delete")
        await self._webhooks.delete(db_session, row)
        logger.info("webhook_deleted", user_id=str(owner.id), webhook_id=str(webhook_id))

    async def list_webhooks(self, db_session: AsyncSession, owner: User) -> list[Webhook]:
        return await self._webhooks.list_by_owner(db_session, owner.id)

    async def test(self, db_session: AsyncSession, webhook_id: UUID, owner: User) -> bool:
        """Deliver a synthetic test event through the regular delivery path."""
        row = await self._get_owned_webhook(db_session, webhook_id, owner, action="test")
        return await self._dispatcher.deliver(
            db_session,
            row,
            WebhookEvent.WEBHOOK_TEST.value,
            {"message": _TEST_MESSAGE, "webhook_id": str(row.id)},
        )

    def events_of(self, row: Webhook) -> list[str]:
        """Return the subscribed events of a row in stable order."""
        return sorted(self._core.events_from_storage(row.events))

    def _normalized_events(self, events: Iterable[str]) -> EventSet:
        event_set = self._core.normalize_events(events)
        if not event_set:
            raise InvalidRequestError("At least one event must be subscribed.")
        invalid = sorted(name for name in event_set if not self._core.is_valid_event_name(name))
        if invalid:
            raise InvalidRequestError(f"Unsupported event name: {invalid[0]!r}.")
        return event_set

    async def _get_owned_webhook(
        self, db_session: AsyncSession, webhook_id: UUID, owner: User, action: str
    ) -> Webhook:
        row = await self._webhooks.get_by_id(db_session, webhook_id)
        if row is None:
            raise NotFoundError("Webhook not found.")
        if row.user_id != owner.id:
            raise PermissionDeniedError(f"You don't have permission to {action} this webhook.")
        return row


@lru_cache
def get_webhook_service() -> WebhookService:
    """Create and cache webhook service dependency."""
    return WebhookService(
        core=WebhookCore(),
        webhooks=WebhookRepository(),
        dispatcher=get_webhook_dispatcher(),
    )
