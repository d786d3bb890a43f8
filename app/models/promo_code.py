"""
Promo Code Model for influencer campaigns.

Each code belongs to an influencer: the buyer gets `discount_percent` off
and the influencer earns `commission_percent` of the order subtotal.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, Integer, Numeric, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, validates

from app.database import Base
from app.db_types import UUIDType


class PromoCode(Base):
    """
    Influencer promo code.
    """
    __tablename__ = "promo_codes"
    __table_args__ = (
        CheckConstraint("code = upper(code)", name="check_promo_code_upper"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    code: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="Unique promo code (stored upper-case)"
    )
    influencer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        nullable=True,
        index=True,
        comment="Influencer who owns this code"
    )

    # Commercial terms
    discount_percent: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Discount given to the buyer"
    )
    commission_percent: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Commission paid to the influencer"
    )

    # Usage
    used_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Number of paid orders that used this code"
    )

    # Validity Period
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    starts_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Expiry (null = never expires)"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    @validates("code")
    def _normalize_code(self, key: str, value: str) -> str:
        return normalize_promo_code(value)

    def is_valid_at(self, now: Optional[datetime] = None) -> bool:
        """Check if the code is active and inside its validity window."""
        now = now or datetime.now(timezone.utc)
        if not self.is_active:
            return False
        if self.starts_at and _aware(self.starts_at) > now:
            return False
        if self.expires_at and _aware(self.expires_at) < now:
            return False
        return True

    def __repr__(self) -> str:
        return (
            f"<PromoCode(code='{self.code}', discount={self.discount_percent}, "
            f"commission={self.commission_percent})>"
        )


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def normalize_promo_code(code: str) -> str:
    """Canonical form codes are stored and looked up in."""
    return code.strip().upper()
