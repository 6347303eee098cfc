"""Webhook subscription ORM model."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, String
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from carrier_api.db.base import Base, TimestampMixin

if TYPE_CHECKING:
    from carrier_api.models.user import User


class WebhookStatus(str, Enum):
    """Delivery states of a webhook subscription."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


def _status_values(enum_cls: type[WebhookStatus]) -> list[str]:
    """Store enum values instead of enum member names."""
    return [member.value for member in enum_cls]


class Webhook(Base, TimestampMixin):
    """Outbound endpoint subscribed to an owner's domain events."""

    __tablename__ = "webhooks"
    __table_args__ = (Index("ix_webhooks_user_id_status", "user_id", "status"),)

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    url: Mapped[str] = mapped_column(String(500), nullable=False)
    secret: Mapped[str] = mapped_column(String(128), nullable=False)
    status: Mapped[WebhookStatus] = mapped_column(
        SAEnum(
            WebhookStatus,
            name="webhook_status",
            values_callable=_status_values,
            validate_strings=True,
        ),
        nullable=False,
        default=WebhookStatus.ACTIVE,
    )
    # Comma-delimited storage form; see WebhookCore.events_from_storage.
    events: Mapped[str] = mapped_column(String(1000), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    success_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    failure_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_triggered_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    user: Mapped[User] = relationship(back_populates="webhooks")
