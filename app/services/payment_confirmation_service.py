"""
Payment Confirmation Service

Turns a gateway payment confirmation into a paid order.

Pipeline:
1. Validate the payload (four required fields, app order id is a UUID)
2. Verify the Razorpay signature; nothing below runs on a bad signature
3. Load the order: paid -> replay, non-payable -> conflict
4. Fetch the gateway order for the captured amount and notes
5. Resolve attribution (existing row, order promo, gateway notes)
6. Compute totals
7. Conditionally commit the paid transition
8. Run post-payment steps (never affect the result)

Errors up to step 7 are raised to the caller with the order unchanged.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional
import uuid
import logging

from app.core.exceptions import ValidationError, AuthenticationError
from app.core.trace import trace_step
from app.schemas.payment import PaidOrderSnapshot, VerifyPaymentRequest
from app.services.attribution_service import AttributionResolver, ResolvedAttribution
from app.services.attribution_store import AttributionStore
from app.services.email_service import OrderNotifier
from app.services.order_finalizer import OrderFinalizer, PaymentDetails
from app.services.order_store import OrderStore
from app.services.payment_service import RazorpayGateway
from app.services.post_payment_service import SideEffectOrchestrator, SideEffectReport
from app.services.totals_service import compute_totals

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    "razorpay_order_id",
    "razorpay_payment_id",
    "razorpay_signature",
    "app_order_id",
)


@dataclass
class ConfirmationResult:
    order_id: uuid.UUID
    order_number: str
    already_paid: bool = False
    side_effects: Optional[SideEffectReport] = None


@dataclass
class _GatewayContext:
    captured_amount_minor: Optional[int] = None
    notes: Dict[str, Any] = field(default_factory=dict)


class PaymentConfirmationService:
    """Confirms one payment per call. Holds no state between calls."""

    def __init__(
        self,
        order_store: OrderStore,
        attribution_store: AttributionStore,
        gateway: RazorpayGateway,
        notifier: OrderNotifier,
        notifier_timeout: float = 10.0,
    ):
        self.order_store = order_store
        self.attribution_store = attribution_store
        self.gateway = gateway
        self.finalizer = OrderFinalizer(order_store)
        self.resolver = AttributionResolver(attribution_store)
        self.side_effects = SideEffectOrchestrator(
            order_store,
            attribution_store,
            notifier,
            notifier_timeout=notifier_timeout,
        )

    async def confirm(self, request: VerifyPaymentRequest) -> ConfirmationResult:
        """
        Confirm a payment and mark the order paid.

        Raises:
            ValidationError: missing field or malformed app_order_id
            AuthenticationError: signature mismatch
            NotFoundError: unknown order
            ConflictError: order not payable
            PersistenceError: paid commit failed
        """
        order_id = self._validate(request)

        if not self.gateway.verify_signature(
            request.razorpay_order_id,
            request.razorpay_payment_id,
            request.razorpay_signature,
        ):
            logger.warning(
                f"Invalid payment signature for order {order_id}, "
                f"payment {request.razorpay_payment_id}"
            )
            trace_step("signature.invalid")
            raise AuthenticationError("Invalid payment signature")
        trace_step("signature.verified")

        loaded = await self.finalizer.load_payable(order_id)
        if loaded.already_paid:
            return ConfirmationResult(
                order_id=loaded.order.id,
                order_number=loaded.order.order_number,
                already_paid=True,
            )
        order = loaded.order

        gateway_ctx = await self._fetch_gateway_context(request.razorpay_order_id)
        attribution = await self.resolver.resolve(order, gateway_ctx.notes)

        totals = compute_totals(
            subtotal=order.subtotal,
            discount_percent=attribution.discount_percent if attribution else Decimal("0"),
            shipping_fee=order.shipping_fee,
            captured_amount_minor=gateway_ctx.captured_amount_minor,
        )
        if not totals.matches_gateway:
            logger.warning(
                f"Order {order.order_number}: gateway captured {totals.captured_amount}, "
                f"computed {totals.local_total}; persisting captured amount"
            )
        trace_step(
            "totals.computed",
            subtotal=totals.subtotal,
            discount_amount=totals.discount_amount,
            shipping_fee=totals.shipping_fee,
            local_total=totals.local_total,
            captured_amount=totals.captured_amount,
            total=totals.total,
        )

        payment = PaymentDetails(
            gateway_order_id=request.razorpay_order_id,
            gateway_payment_id=request.razorpay_payment_id,
            signature=request.razorpay_signature,
            method=request.method,
            raw_payload=request.raw,
        )
        committed = await self.finalizer.commit_paid(order, totals, payment)
        snapshot = PaidOrderSnapshot.model_validate(committed.order)

        if committed.already_paid:
            return ConfirmationResult(
                order_id=snapshot.id,
                order_number=snapshot.order_number,
                already_paid=True,
            )

        report = await self._run_side_effects(snapshot, totals, attribution)
        return ConfirmationResult(
            order_id=snapshot.id,
            order_number=snapshot.order_number,
            side_effects=report,
        )

    def _validate(self, request: VerifyPaymentRequest) -> uuid.UUID:
        missing = [name for name in REQUIRED_FIELDS if not getattr(request, name)]
        if missing:
            logger.warning(f"Payment confirmation missing fields: {missing}")
            trace_step("payload.invalid", missing=missing)
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        try:
            order_id = uuid.UUID(str(request.app_order_id))
        except ValueError:
            trace_step("payload.invalid", app_order_id=request.app_order_id)
            raise ValidationError("Invalid app_order_id")

        trace_step(
            "payload.valid",
            order_id=order_id,
            razorpay_order_id=request.razorpay_order_id,
            razorpay_payment_id=request.razorpay_payment_id,
        )
        return order_id

    async def _fetch_gateway_context(self, gateway_order_id: str) -> _GatewayContext:
        """Captured amount and notes; both absent if Razorpay can't be reached."""
        try:
            gateway_order = await self.gateway.fetch_gateway_order(gateway_order_id)
        except Exception as e:
            logger.warning(f"Could not fetch Razorpay order {gateway_order_id}: {e}")
            trace_step("gateway.fetch_failed", error=str(e))
            return _GatewayContext()

        trace_step(
            "gateway.fetched",
            captured_amount_minor=gateway_order.captured_amount_minor,
            notes=gateway_order.notes,
        )
        return _GatewayContext(
            captured_amount_minor=gateway_order.captured_amount_minor,
            notes=gateway_order.notes,
        )

    async def _run_side_effects(
        self,
        snapshot: PaidOrderSnapshot,
        totals,
        attribution: Optional[ResolvedAttribution],
    ) -> Optional[SideEffectReport]:
        try:
            return await self.side_effects.run(snapshot, totals, attribution)
        except Exception as e:
            # The order is already paid; nothing after the commit may fail the request
            logger.exception(f"Post-payment steps aborted for order {snapshot.order_number}: {e}")
            trace_step("side_effect.aborted", error=str(e))
            return None
