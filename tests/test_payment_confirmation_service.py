"""
End-to-end tests for the confirmation pipeline against the stores.
"""
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import update

from app.core.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from app.models.order import Order, OrderStatus
from app.schemas.payment import VerifyPaymentRequest
from app.services.payment_confirmation_service import PaymentConfirmationService
from app.services.post_payment_service import STEP_CART
from tests.conftest import FakeGateway, sign


def confirmation(order: Order, gateway_order_id: str = "order_RZP1", payment_id: str = "pay_RZP1", **extra):
    return VerifyPaymentRequest(
        razorpay_order_id=gateway_order_id,
        razorpay_payment_id=payment_id,
        razorpay_signature=sign(gateway_order_id, payment_id),
        app_order_id=str(order.id),
        **extra,
    )


@pytest.fixture
def make_service(order_store, attribution_store, notifier):
    def _make(gateway: FakeGateway) -> PaymentConfirmationService:
        return PaymentConfirmationService(
            order_store=order_store,
            attribution_store=attribution_store,
            gateway=gateway,
            notifier=notifier,
            notifier_timeout=0.5,
        )

    return _make


class RacingGateway(FakeGateway):
    """Marks the order paid while the gateway order is being fetched."""

    def __init__(self, db, order_id, **kwargs):
        super().__init__(**kwargs)
        self.db = db
        self.order_id = order_id

    async def fetch_gateway_order(self, gateway_order_id):
        await self.db.execute(
            update(Order)
            .where(Order.id == self.order_id)
            .values(status=OrderStatus.PAID.value, gateway_payment_id="pay_WINNER")
        )
        await self.db.commit()
        return await super().fetch_gateway_order(gateway_order_id)


class TestPaymentConfirmation:

    async def test_promo_order_confirmed(
        self, db_session, make_service, order_store, attribution_store, notifier,
        make_order, make_promo, add_cart_items, count_cart_items,
    ) -> None:
        promo = await make_promo(used_count=4)
        order = await make_order(promo_code_id=promo.id, status=OrderStatus.PENDING_PAYMENT.value)
        await add_cart_items(order.user_id)
        service = make_service(FakeGateway(captured_amount_minor=95000))

        result = await service.confirm(confirmation(order, method="upi"))

        assert result.already_paid is False
        assert result.order_id == order.id
        assert result.order_number == order.order_number
        assert result.side_effects.ok

        paid = await order_store.get_order(order.id)
        assert paid.status == OrderStatus.PAID.value
        assert paid.total == Decimal("950.00")
        assert paid.discount_total == Decimal("100.00")
        assert paid.payment_method == "upi"
        assert paid.gateway_payment_id == "pay_RZP1"

        record = await attribution_store.get_attribution(order.id)
        assert record.influencer_id == promo.influencer_id
        assert record.commission_amount == Decimal("150.00")
        assert record.status == "pending"

        refreshed = await attribution_store.get_promo_by_id(promo.id)
        await db_session.refresh(refreshed)
        assert refreshed.used_count == 5

        assert await count_cart_items(order.user_id) == 0
        receipt_order, receipt_totals = notifier.receipts[0]
        assert receipt_order.status == OrderStatus.PAID.value
        assert receipt_totals.total == Decimal("950.00")

    async def test_replay_is_idempotent(
        self, db_session, make_service, attribution_store, notifier, make_order, make_promo,
    ) -> None:
        promo = await make_promo()
        order = await make_order(promo_code_id=promo.id)
        service = make_service(FakeGateway(captured_amount_minor=95000))

        first = await service.confirm(confirmation(order))
        second = await service.confirm(confirmation(order))

        assert first.already_paid is False
        assert second.already_paid is True
        assert second.order_id == order.id
        assert second.side_effects is None
        assert len(notifier.receipts) == 1

        refreshed = await attribution_store.get_promo_by_id(promo.id)
        await db_session.refresh(refreshed)
        assert refreshed.used_count == 1

    async def test_bad_signature_changes_nothing(
        self, make_service, order_store, notifier, make_order,
    ) -> None:
        order = await make_order()
        gateway = FakeGateway()
        request = confirmation(order)
        request.razorpay_signature = sign("order_RZP1", "pay_OTHER")

        with pytest.raises(AuthenticationError):
            await make_service(gateway).confirm(request)

        current = await order_store.get_order(order.id)
        assert current.status == OrderStatus.CREATED.value
        assert gateway.fetched == []
        assert notifier.receipts == []

    @pytest.mark.parametrize("missing", [
        "razorpay_order_id",
        "razorpay_payment_id",
        "razorpay_signature",
        "app_order_id",
    ])
    async def test_missing_field(self, make_service, make_order, missing) -> None:
        order = await make_order()
        request = confirmation(order)
        setattr(request, missing, None)

        with pytest.raises(ValidationError) as exc_info:
            await make_service(FakeGateway()).confirm(request)

        assert missing in exc_info.value.message

    async def test_malformed_app_order_id(self, make_service, make_order) -> None:
        order = await make_order()
        request = confirmation(order)
        request.app_order_id = "ORD-123"

        with pytest.raises(ValidationError):
            await make_service(FakeGateway()).confirm(request)

    async def test_unknown_order(self, make_service) -> None:
        request = VerifyPaymentRequest(
            razorpay_order_id="order_RZP1",
            razorpay_payment_id="pay_RZP1",
            razorpay_signature=sign("order_RZP1", "pay_RZP1"),
            app_order_id=str(uuid.uuid4()),
        )

        with pytest.raises(NotFoundError):
            await make_service(FakeGateway()).confirm(request)

    async def test_cancelled_order_rejected(self, make_service, order_store, make_order) -> None:
        order = await make_order(status=OrderStatus.CANCELLED.value)

        with pytest.raises(ConflictError):
            await make_service(FakeGateway()).confirm(confirmation(order))

        current = await order_store.get_order(order.id)
        assert current.status == OrderStatus.CANCELLED.value

    async def test_organic_order_with_gateway_unreachable(
        self, make_service, order_store, attribution_store, notifier, make_order,
    ) -> None:
        order = await make_order()
        service = make_service(FakeGateway(fetch_error=ConnectionError("razorpay down")))

        result = await service.confirm(confirmation(order))

        assert result.already_paid is False
        paid = await order_store.get_order(order.id)
        assert paid.status == OrderStatus.PAID.value
        assert paid.total == Decimal("1050.00")
        assert paid.discount_total == Decimal("0.00")
        assert await attribution_store.get_attribution(order.id) is None
        _, attribution, _ = notifier.alerts[0]
        assert attribution is None

    async def test_attribution_from_gateway_notes(
        self, make_service, attribution_store, make_order, make_promo,
    ) -> None:
        promo = await make_promo()
        order = await make_order()
        gateway = FakeGateway(notes={
            "type": "promo",
            "promo_code_id": str(promo.id),
            "influencer_id": str(promo.influencer_id),
        })

        await make_service(gateway).confirm(confirmation(order))

        record = await attribution_store.get_attribution(order.id)
        assert record.promo_code_id == promo.id
        assert record.commission_amount == Decimal("150.00")

    async def test_concurrent_confirmation_loses_race(
        self, db_session, make_service, order_store, notifier, make_order, make_promo,
    ) -> None:
        promo = await make_promo()
        order = await make_order(promo_code_id=promo.id)
        gateway = RacingGateway(db_session, order.id, captured_amount_minor=95000)

        result = await make_service(gateway).confirm(confirmation(order))

        assert result.already_paid is True
        assert result.side_effects is None
        assert notifier.receipts == []
        current = await order_store.get_order(order.id)
        assert current.gateway_payment_id == "pay_WINNER"

    async def test_guest_checkout_skips_cart(self, make_service, make_order) -> None:
        order = await make_order(user_id=None)

        result = await make_service(FakeGateway()).confirm(confirmation(order))

        assert result.side_effects.outcome(STEP_CART).skipped
