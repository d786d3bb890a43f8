import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Text, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import JSONType, UUIDType


class OrderStatus(str, Enum):
    """Order status enumeration for the storefront checkout flow."""
    # Payable states
    CREATED = "created"                  # Order placed at checkout
    PENDING_PAYMENT = "pending_payment"  # Gateway order created, awaiting payment

    # Settled
    PAID = "paid"                        # Payment confirmed

    # Non-payable states
    CANCELLED = "cancelled"
    FAILED = "failed"
    REFUNDED = "refunded"


PAYABLE_STATUSES = (OrderStatus.CREATED.value, OrderStatus.PENDING_PAYMENT.value)


class Order(Base):
    """
    Storefront order.

    Created at checkout; mutated by the payment pipeline only through the
    conditional paid transition.
    """
    __tablename__ = "orders"
    __table_args__ = (
        Index("ix_orders_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_number: Mapped[str] = mapped_column(
        String(30),
        unique=True,
        nullable=False,
        index=True,
        comment="Human-facing order number"
    )

    # Buyer (user_id null = guest checkout)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        nullable=True,
        index=True
    )
    customer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=OrderStatus.CREATED.value,
        comment="created, pending_payment, paid, cancelled, failed, refunded"
    )

    # Pricing
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    shipping_fee: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False
    )
    discount_total: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False
    )
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="INR", nullable=False)

    # Promo captured at checkout
    promo_code_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("promo_codes.id", ondelete="SET NULL"),
        nullable=True
    )
    promo_snapshot: Mapped[Optional[dict]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Promo terms copied at order creation"
    )

    # Payment
    gateway_order_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="Razorpay order ID"
    )
    gateway_payment_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Razorpay payment ID"
    )
    payment_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    payment_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    payment_payload: Mapped[Optional[dict]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Raw gateway payload kept for audit"
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    # Timestamps
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

    status_history: Mapped[List["OrderStatusHistory"]] = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.created_at"
    )

    @property
    def is_payable(self) -> bool:
        return self.status in PAYABLE_STATUSES

    def __repr__(self) -> str:
        return f"<Order(number='{self.order_number}', status='{self.status}', total={self.total})>"


class OrderStatusHistory(Base):
    """Order status change history."""
    __tablename__ = "order_status_history"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    from_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    to_status: Mapped[str] = mapped_column(String(50), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    order: Mapped["Order"] = relationship("Order", back_populates="status_history")

    def __repr__(self) -> str:
        return f"<OrderStatusHistory({self.from_status} -> {self.to_status})>"
