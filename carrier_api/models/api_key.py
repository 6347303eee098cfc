"""API key and API key usage log ORM models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from carrier_api.db.base import Base, TimestampMixin

if TYPE_CHECKING:
    from carrier_api.models.user import User


class ApiKeyStatus(str, Enum):
    """Lifecycle states of a business API key."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    REVOKED = "revoked"


def _status_values(enum_cls: type[ApiKeyStatus]) -> list[str]:
    """Store enum values instead of enum member names."""
    return [member.value for member in enum_cls]


class ApiKey(Base, TimestampMixin):
    """Hashed business API key; the plaintext is shown once at issuance and never stored."""

    __tablename__ = "api_keys"
    __table_args__ = (Index("ix_api_keys_user_id_status", "user_id", "status"),)

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    key_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    key_prefix: Mapped[str] = mapped_column(String(8), nullable=False)
    label: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[ApiKeyStatus] = mapped_column(
        SAEnum(
            ApiKeyStatus,
            name="api_key_status",
            values_callable=_status_values,
            validate_strings=True,
        ),
        nullable=False,
        default=ApiKeyStatus.ACTIVE,
    )
    rate_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=1000)
    requests_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped[User] = relationship(back_populates="api_keys")


class ApiKeyUsageLog(Base):
    """Append-only record of one API-key-authenticated request."""

    __tablename__ = "api_key_usage_logs"
    __table_args__ = (Index("ix_api_key_usage_logs_key_hash_created_at", "key_hash", "created_at"),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    key_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    endpoint: Mapped[str | None] = mapped_column(String(255), nullable=True)
    method: Mapped[str | None] = mapped_column(String(10), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    response_status: Mapped[int | None] = mapped_column(Integer, nullable=True)
    response_time_ms: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
