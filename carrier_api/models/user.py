"""Business account ORM model."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, String
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from carrier_api.db.base import Base, TimestampMixin

if TYPE_CHECKING:
    from carrier_api.models.api_key import ApiKey
    from carrier_api.models.webhook import Webhook


class BusinessVerificationStatus(str, Enum):
    """Review state of a business account."""

    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    """Store enum values instead of enum member names."""
    return [member.value for member in enum_cls]


class User(Base, TimestampMixin):
    """Account that owns API keys and webhook subscriptions."""

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_business: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    business_verification_status: Mapped[BusinessVerificationStatus | None] = mapped_column(
        SAEnum(
            BusinessVerificationStatus,
            name="business_verification_status",
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=True,
    )

    api_keys: Mapped[list[ApiKey]] = relationship(back_populates="user")
    webhooks: Mapped[list[Webhook]] = relationship(back_populates="user")

    @property
    def is_verified_business(self) -> bool:
        """Return True for business accounts that passed verification."""
        return bool(self.is_business) and (
            self.business_verification_status == BusinessVerificationStatus.VERIFIED
        )
