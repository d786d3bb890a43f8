"""
Order Store

Reads and writes orders for the payment pipeline. The only status write is
a conditional UPDATE so that concurrent confirmations of one order cannot
both move it to `paid`.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional
import uuid
import logging

from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.order import Order, OrderStatusHistory
from app.models.cart import CartItem

logger = logging.getLogger(__name__)


class OrderStore:
    """Order persistence backed by an async SQLAlchemy session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_order(self, order_id: uuid.UUID) -> Optional[Order]:
        """Load an order, bypassing any stale identity-map copy."""
        stmt = (
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def update_order_status(
        self,
        order_id: uuid.UUID,
        expected_statuses: Iterable[str],
        new_fields: Dict[str, Any],
        history_note: Optional[str] = None,
    ) -> bool:
        """
        Compare-and-set the order row.

        Applies `new_fields` only while the order's status is one of
        `expected_statuses`, then commits. Returns False if no row matched,
        in which case nothing was written.
        """
        expected = list(expected_statuses)
        new_fields = dict(new_fields)
        new_fields["updated_at"] = datetime.now(timezone.utc)

        current = await self.db.execute(
            select(Order.status).where(Order.id == order_id)
        )
        from_status = current.scalar_one_or_none()

        stmt = (
            update(Order)
            .where(Order.id == order_id, Order.status.in_(expected))
            .values(**new_fields)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)

        if result.rowcount != 1:
            await self.db.rollback()
            return False

        if "status" in new_fields:
            self.db.add(OrderStatusHistory(
                order_id=order_id,
                from_status=from_status,
                to_status=new_fields["status"],
                notes=history_note,
            ))

        await self.db.commit()
        return True

    async def set_gateway_order(
        self,
        order_id: uuid.UUID,
        gateway_order_id: str,
        expected_statuses: Iterable[str],
        new_status: str,
        promo_fields: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Attach a freshly created gateway order to a payable order."""
        fields: Dict[str, Any] = {"gateway_order_id": gateway_order_id, "status": new_status}
        if promo_fields:
            fields.update(promo_fields)
        return await self.update_order_status(
            order_id,
            expected_statuses,
            fields,
            history_note=f"Razorpay order {gateway_order_id} created",
        )

    async def clear_cart(self, user_id: uuid.UUID) -> int:
        """Delete the buyer's active cart lines. Returns the number removed."""
        result = await self.db.execute(
            delete(CartItem).where(CartItem.user_id == user_id)
        )
        await self.db.commit()
        return result.rowcount or 0
