"""
Order Finalizer

Moves an order to `paid` exactly once.

States:
    created / pending_payment -> payable
    paid                      -> replay, nothing to do
    anything else             -> ConflictError
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import uuid
import logging

from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import NotFoundError, ConflictError, PersistenceError
from app.core.trace import trace_step
from app.models.order import Order, OrderStatus, PAYABLE_STATUSES
from app.services.order_store import OrderStore
from app.services.totals_service import PaymentTotals

logger = logging.getLogger(__name__)

DEFAULT_PAYMENT_METHOD = "razorpay"


@dataclass
class PaymentDetails:
    """Verified gateway identifiers for the payment being confirmed."""
    gateway_order_id: str
    gateway_payment_id: str
    signature: str
    method: Optional[str] = None
    raw_payload: Optional[Dict[str, Any]] = None

    def audit_payload(self) -> Dict[str, Any]:
        if self.raw_payload is not None:
            return self.raw_payload
        return {
            "razorpay_order_id": self.gateway_order_id,
            "razorpay_payment_id": self.gateway_payment_id,
            "razorpay_signature": self.signature,
        }


@dataclass
class FinalizeResult:
    """Outcome of the paid transition."""
    order: Order
    committed: bool
    already_paid: bool = False


class OrderFinalizer:
    """Status check and conditional paid commit for one order."""

    def __init__(self, store: OrderStore):
        self.store = store

    async def load_payable(self, order_id: uuid.UUID) -> FinalizeResult:
        """
        Load the order and classify its status.

        Returns:
            FinalizeResult with already_paid=True for a replay

        Raises:
            NotFoundError: unknown order
            ConflictError: order is in a non-payable status
        """
        order = await self.store.get_order(order_id)
        if order is None:
            logger.warning(f"Payment confirmation for unknown order {order_id}")
            raise NotFoundError("Order not found")

        trace_step("order.loaded", order_id=order.id, status=order.status)

        if order.status == OrderStatus.PAID.value:
            logger.info(f"Order {order.order_number} already paid, replaying confirmation")
            trace_step("order.already_paid", order_id=order.id)
            return FinalizeResult(order=order, committed=False, already_paid=True)

        if not order.is_payable:
            logger.warning(f"Order {order.order_number} status {order.status} not payable")
            raise ConflictError(f"Order status {order.status} not payable")

        return FinalizeResult(order=order, committed=False)

    async def commit_paid(
        self,
        order: Order,
        totals: PaymentTotals,
        payment: PaymentDetails,
    ) -> FinalizeResult:
        """
        Conditionally write the paid transition.

        If another confirmation won the race the order is returned as an
        already-paid replay.

        Raises:
            ConflictError: order left the payable states meanwhile
            PersistenceError: the write failed
        """
        order_id = order.id
        order_number = order.order_number
        fields = {
            "status": OrderStatus.PAID.value,
            "discount_total": totals.discount_amount,
            "total": totals.total,
            "payment_method": payment.method or DEFAULT_PAYMENT_METHOD,
            "gateway_order_id": payment.gateway_order_id,
            "gateway_payment_id": payment.gateway_payment_id,
            "payment_reference": payment.gateway_payment_id,
            "payment_payload": payment.audit_payload(),
            "paid_at": datetime.now(timezone.utc),
        }

        try:
            updated = await self.store.update_order_status(
                order_id,
                PAYABLE_STATUSES,
                fields,
                history_note=f"Payment confirmed via Razorpay. Payment ID: {payment.gateway_payment_id}",
            )
        except SQLAlchemyError as e:
            await self.store.db.rollback()
            logger.error(f"Failed to mark order {order_number} paid: {e}")
            trace_step("order.commit_failed", error=str(e))
            raise PersistenceError("Failed to record payment") from e

        if not updated:
            current = await self.store.get_order(order_id)
            if current is not None and current.status == OrderStatus.PAID.value:
                logger.info(f"Order {order_number} was paid by a concurrent confirmation")
                trace_step("order.already_paid", order_id=order_id, concurrent=True)
                return FinalizeResult(order=current, committed=False, already_paid=True)
            status = current.status if current is not None else "missing"
            raise ConflictError(f"Order status {status} not payable")

        paid_order = await self.store.get_order(order_id)
        logger.info(
            f"Order {order_number} marked paid: total={totals.total} "
            f"(local {totals.local_total}), payment {payment.gateway_payment_id}"
        )
        trace_step(
            "order.committed",
            order_id=order_id,
            total=totals.total,
            local_total=totals.local_total,
            discount_total=totals.discount_amount,
        )
        return FinalizeResult(order=paid_order or order, committed=True)
