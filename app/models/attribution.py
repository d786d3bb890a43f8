"""Order attribution model.

Links a paid order to the influencer and promo code responsible for it,
together with the commission terms in effect when the order was paid.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Numeric, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import UUIDType


class AttributionStatus(str, Enum):
    """Attribution settlement status."""
    PENDING = "pending"         # Awaiting settlement
    APPROVED = "approved"       # Approved for payout
    PAID = "paid"               # Commission paid out
    CANCELLED = "cancelled"     # Order cancelled/refunded


class OrderAttribution(Base):
    """
    One attribution per order.

    Commission is settled elsewhere; this pipeline only ever writes
    `pending` rows.
    """
    __tablename__ = "order_attributions"
    __table_args__ = (
        UniqueConstraint("order_id", name="uq_order_attributions_order"),
        Index("ix_order_attributions_influencer", "influencer_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False
    )
    influencer_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    promo_code_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("promo_codes.id", ondelete="SET NULL"),
        nullable=True
    )
    attributed_by: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="promo",
        comment="Source the attribution was resolved from"
    )

    # Terms
    discount_percent: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("0"),
    )
    commission_percent: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("0"),
    )
    commission_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        comment="subtotal * commission_percent / 100"
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AttributionStatus.PENDING.value
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<OrderAttribution(order={self.order_id}, influencer={self.influencer_id}, "
            f"commission={self.commission_amount})>"
        )
