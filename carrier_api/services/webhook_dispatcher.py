"""Fire-and-forget fan-out and signed delivery of domain events to webhooks.

Each matching subscription gets one HTTP POST with a bounded timeout. There is
no retry: a failed attempt only increments the subscription's failure counter.
Deliveries run as background tasks with bounded concurrency and each uses its
own database session, so one slow or failing receiver never blocks another.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from functools import lru_cache
from typing import Any
from uuid import UUID

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carrier_api.config import get_settings
from carrier_api.core.webhooks import (
    EVENT_HEADER,
    SIGNATURE_HEADER,
    WILDCARD_EVENT,
    WebhookCore,
)
from carrier_api.db.session import get_session_factory
from carrier_api.middleware.metrics import DEFAULT_METRICS_REGISTRY, MetricsRegistry
from carrier_api.models.webhook import Webhook
from carrier_api.repositories import WebhookRepository
from carrier_api.services.errors import InvalidRequestError

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class WebhookDispatcher:
    """Deliver signed event envelopes to an owner's active subscriptions."""

    def __init__(
        self,
        core: WebhookCore,
        webhooks: WebhookRepository,
        session_factory: async_sessionmaker[AsyncSession],
        timeout_seconds: float = 10.0,
        max_concurrent_deliveries: int = 16,
        user_agent: str = "carrier-webhooks/1.0",
        http_client: httpx.AsyncClient | None = None,
        metrics: MetricsRegistry | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._core = core
        self._webhooks = webhooks
        self._session_factory = session_factory
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            follow_redirects=False,
        )
        self._user_agent = user_agent
        self._semaphore = asyncio.Semaphore(max_concurrent_deliveries)
        self._metrics = metrics or DEFAULT_METRICS_REGISTRY
        self._now = now or _utcnow
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        """Number of fan-out tasks still in flight."""
        return len(self._tasks)

    def dispatch(self, event_type: str, payload: Mapping[str, Any], owner_id: UUID) -> None:
        """Schedule delivery of one event to the owner's matching webhooks and return."""
        if event_type == WILDCARD_EVENT or not self._core.is_valid_event_name(event_type):
            raise InvalidRequestError(f"Unsupported event name: {event_type!r}.")
        task = asyncio.get_running_loop().create_task(
            self._fan_out(event_type, dict(payload), owner_id)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def deliver(
        self,
        db_session: AsyncSession,
        webhook: Webhook,
        event_type: str,
        payload: Mapping[str, Any],
    ) -> bool:
        """POST one signed envelope and record exactly one outcome counter."""
        triggered_at = self._now()
        envelope = self._core.build_envelope(event_type, payload, timestamp=triggered_at)
        body = self._core.serialize_envelope(envelope)
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self._user_agent,
            SIGNATURE_HEADER: self._core.sign(body, webhook.secret),
            EVENT_HEADER: event_type,
        }

        success = False
        status_code: int | None = None
        try:
            response = await self._client.post(webhook.url, content=body, headers=headers)
            status_code = response.status_code
            success = response.is_success
        except (httpx.HTTPError, httpx.InvalidURL, UnicodeEncodeError) as exc:
            logger.warning(
                "webhook_delivery_transport_error",
                webhook_id=str(webhook.id),
                event_type=event_type,
                error=type(exc).__name__,
            )

        await self._webhooks.record_delivery(
            db_session, webhook.id, success=success, triggered_at=triggered_at
        )
        self._metrics.record_delivery(event_type, "success" if success else "failure")
        log = logger.info if success else logger.warning
        log(
            "webhook_delivered" if success else "webhook_delivery_failed",
            webhook_id=str(webhook.id),
            event_type=event_type,
            status_code=status_code,
        )
        return success

    async def drain(self) -> None:
        """Wait until every scheduled fan-out has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Drain in-flight deliveries and close the owned HTTP client."""
        await self.drain()
        if self._owns_client:
            await self._client.aclose()

    async def _fan_out(self, event_type: str, payload: dict[str, Any], owner_id: UUID) -> None:
        """Load active subscriptions, filter by event set, and deliver independently."""
        try:
            async with self._session_factory() as db_session:
                webhooks = await self._webhooks.list_active_by_owner(db_session, owner_id)
        except Exception:
            logger.exception(
                "webhook_dispatch_lookup_failed", event_type=event_type, owner_id=str(owner_id)
            )
            return

        matching = [
            webhook
            for webhook in webhooks
            if self._core.matches(self._core.events_from_storage(webhook.events), event_type)
        ]
        logger.info(
            "webhook_dispatch",
            event_type=event_type,
            owner_id=str(owner_id),
            subscriptions=len(webhooks),
            matching=len(matching),
        )
        results = await asyncio.gather(
            *(self._deliver_isolated(webhook, event_type, payload) for webhook in matching),
            return_exceptions=True,
        )
        for webhook, result in zip(matching, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(
                    "webhook_delivery_error",
                    webhook_id=str(webhook.id),
                    event_type=event_type,
                    error=str(result),
                )

    async def _deliver_isolated(
        self, webhook: Webhook, event_type: str, payload: dict[str, Any]
    ) -> bool:
        """Deliver under the concurrency bound with a dedicated session."""
        async with self._semaphore:
            async with self._session_factory() as db_session:
                return await self.deliver(db_session, webhook, event_type, payload)


@lru_cache
def get_webhook_dispatcher() -> WebhookDispatcher:
    """Create and cache the process-wide webhook dispatcher."""
    settings = get_settings()
    return WebhookDispatcher(
        core=WebhookCore(),
        webhooks=WebhookRepository(),
        session_factory=get_session_factory(),
        timeout_seconds=settings.webhooks.timeout_seconds,
        max_concurrent_deliveries=settings.webhooks.max_concurrent_deliveries,
        user_agent=settings.webhooks.user_agent,
    )
