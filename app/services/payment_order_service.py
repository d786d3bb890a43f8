"""
Payment Order Service

Creates the Razorpay order a buyer pays against. When a valid promo code is
supplied, the promo is attached to the order, a pending attribution is
seeded and the promo context is copied into the gateway notes so that
confirmation can rebuild attribution from any of the three sources. Without
a valid promo, any promo and pending attribution from an earlier call are
cleared.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional
import uuid
import logging

from app.core.exceptions import NotFoundError, ConflictError, ValidationError, PersistenceError
from app.models.attribution import OrderAttribution, AttributionStatus
from app.models.order import OrderStatus, PAYABLE_STATUSES
from app.models.promo_code import PromoCode
from app.services.attribution_store import AttributionStore
from app.services.order_store import OrderStore
from app.services.payment_service import RazorpayGateway
from app.services.totals_service import compute_totals, rupees_to_paise

logger = logging.getLogger(__name__)

ATTRIBUTED_BY_PROMO = "promo"


@dataclass
class PaymentOrder:
    gateway_order_id: str
    order_id: uuid.UUID
    amount_minor: int
    currency: str
    notes: Dict[str, Any] = field(default_factory=dict)


class PaymentOrderService:
    """Gateway order creation for payable app orders."""

    def __init__(
        self,
        order_store: OrderStore,
        attribution_store: AttributionStore,
        gateway: RazorpayGateway,
        default_currency: str = "INR",
    ):
        self.order_store = order_store
        self.attribution_store = attribution_store
        self.gateway = gateway
        self.default_currency = default_currency

    async def create_payment_order(
        self,
        order_id: uuid.UUID,
        promo_code: Optional[str] = None,
    ) -> PaymentOrder:
        """
        Create a Razorpay order for an app order.

        Args:
            order_id: App order ID
            promo_code: Code entered at checkout, if any

        Returns:
            PaymentOrder with the amount (paise) and notes sent to Razorpay

        Raises:
            NotFoundError: unknown order
            ConflictError: order not payable
        """
        order = await self.order_store.get_order(order_id)
        if order is None:
            raise NotFoundError("Order not found")
        if not order.is_payable:
            raise ConflictError(f"Order status {order.status} not payable")

        order_number = order.order_number
        currency = order.currency or self.default_currency
        notes: Dict[str, Any] = {"app_order_id": str(order.id)}
        promo_fields: Optional[Dict[str, Any]] = None
        amount = order.total

        promo = await self._valid_promo(promo_code) if promo_code else None
        if promo is not None:
            code = promo.code.upper()
            totals = compute_totals(order.subtotal, promo.discount_percent, order.shipping_fee)
            amount = totals.local_total

            if promo.influencer_id is not None:
                await self.attribution_store.upsert_attribution(OrderAttribution(
                    order_id=order.id,
                    influencer_id=promo.influencer_id,
                    promo_code_id=promo.id,
                    attributed_by=ATTRIBUTED_BY_PROMO,
                    discount_percent=promo.discount_percent,
                    commission_percent=promo.commission_percent,
                    commission_amount=Decimal("0.00"),
                    currency=currency,
                    status=AttributionStatus.PENDING.value,
                ))

            promo_fields = {
                "promo_code_id": promo.id,
                "promo_snapshot": {
                    "id": str(promo.id),
                    "code": code,
                    "discount_percent": str(promo.discount_percent),
                    "commission_percent": str(promo.commission_percent),
                    "influencer_id": str(promo.influencer_id) if promo.influencer_id else None,
                },
            }
            notes.update({
                "type": "promo",
                "code": code,
                "promo_code_id": str(promo.id),
                "influencer_id": str(promo.influencer_id) if promo.influencer_id else "",
                "discount_percent": str(promo.discount_percent),
                "commission_percent": str(promo.commission_percent),
            })
            logger.info(f"Promo {code} applied to order {order_number}")
        else:
            # Clear any promo left by an earlier create-order call
            promo_fields = {"promo_code_id": None, "promo_snapshot": None}

        amount_minor = rupees_to_paise(amount)
        if amount_minor <= 0:
            raise ValidationError("Order amount must be positive")

        razorpay_order = await self.gateway.create_order(
            amount_minor=amount_minor,
            currency=currency,
            receipt=str(order_id),
            notes=notes,
        )
        gateway_order_id = razorpay_order["id"]

        if promo is None:
            dropped = await self.attribution_store.delete_pending_attribution(order_id)
            if dropped:
                logger.info(f"Dropped pending attribution for order {order_number}")

        attached = await self.order_store.set_gateway_order(
            order_id,
            gateway_order_id,
            PAYABLE_STATUSES,
            OrderStatus.PENDING_PAYMENT.value,
            promo_fields=promo_fields,
        )
        if not attached:
            logger.error(f"Order {order_number} left payable states before Razorpay order was stored")
            raise PersistenceError("Failed to attach payment order")

        return PaymentOrder(
            gateway_order_id=gateway_order_id,
            order_id=order_id,
            amount_minor=amount_minor,
            currency=currency,
            notes=notes,
        )

    async def _valid_promo(self, code: str) -> Optional[PromoCode]:
        promo = await self.attribution_store.get_promo_by_code(code)
        if promo is None:
            logger.warning(f"Promo code {code} not found or inactive")
            return None
        if not promo.is_valid_at():
            logger.warning(f"Promo code {code} outside its validity window")
            return None
        return promo
