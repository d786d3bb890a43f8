"""
Tests for post-payment steps: isolation, upsert and timeouts.
"""
import uuid
from decimal import Decimal

from sqlalchemy import select

from app.core.trace import confirmation_trace
from app.models.attribution import OrderAttribution
from app.models.order import OrderStatus
from app.models.promo_code import PromoCode
from app.schemas.payment import PaidOrderSnapshot
from app.services.attribution_service import ResolvedAttribution, SOURCE_PROMO
from app.services.attribution_store import AttributionStore
from app.services.post_payment_service import (
    SideEffectOrchestrator,
    STEP_ALERT,
    STEP_ATTRIBUTION,
    STEP_CART,
    STEP_PROMO_USAGE,
    STEP_RECEIPT,
)
from app.services.totals_service import compute_totals
from tests.conftest import FakeNotifier


def resolved_for(promo: PromoCode) -> ResolvedAttribution:
    return ResolvedAttribution.from_promo(promo, "order_promo")


async def paid_snapshot(make_order, **overrides) -> PaidOrderSnapshot:
    values = {"status": OrderStatus.PAID.value}
    values.update(overrides)
    order = await make_order(**values)
    return PaidOrderSnapshot.model_validate(order)


class BrokenAttributionStore(AttributionStore):

    async def upsert_attribution(self, record):
        raise RuntimeError("attribution table unavailable")


class TestSideEffectOrchestrator:

    async def test_all_steps_run(
        self, db_session, order_store, attribution_store, notifier,
        make_order, make_promo, add_cart_items, count_cart_items,
    ) -> None:
        promo = await make_promo()
        snapshot = await paid_snapshot(make_order, promo_code_id=promo.id)
        await add_cart_items(snapshot.user_id, count=3)
        totals = compute_totals(snapshot.subtotal, promo.discount_percent, snapshot.shipping_fee)

        report = await SideEffectOrchestrator(order_store, attribution_store, notifier).run(
            snapshot, totals, resolved_for(promo)
        )

        assert report.ok
        assert report.commission_amount == Decimal("150.00")

        record = await attribution_store.get_attribution(snapshot.id)
        assert record.status == "pending"
        assert record.influencer_id == promo.influencer_id
        assert record.commission_amount == Decimal("150.00")

        refreshed = await attribution_store.get_promo_by_id(promo.id)
        await db_session.refresh(refreshed)
        assert refreshed.used_count == 1

        assert await count_cart_items(snapshot.user_id) == 0
        assert len(notifier.receipts) == 1
        assert len(notifier.alerts) == 1

    async def test_existing_attribution_is_updated(
        self, order_store, attribution_store, notifier, make_order, make_promo, make_attribution,
    ) -> None:
        promo = await make_promo()
        snapshot = await paid_snapshot(make_order, promo_code_id=promo.id)
        order = await order_store.get_order(snapshot.id)
        await make_attribution(order, commission_amount=Decimal("0.00"), attributed_by="promo")
        totals = compute_totals(snapshot.subtotal, promo.discount_percent, snapshot.shipping_fee)

        report = await SideEffectOrchestrator(order_store, attribution_store, notifier).run(
            snapshot, totals, resolved_for(promo)
        )

        assert report.outcome(STEP_ATTRIBUTION).ok
        rows = (await attribution_store.db.execute(
            select(OrderAttribution).where(OrderAttribution.order_id == snapshot.id)
        )).scalars().all()
        assert len(rows) == 1
        assert rows[0].commission_amount == Decimal("150.00")
        assert rows[0].influencer_id == promo.influencer_id

    async def test_notifier_failure_does_not_stop_other_steps(
        self, order_store, attribution_store, make_order, make_promo,
        add_cart_items, count_cart_items,
    ) -> None:
        notifier = FakeNotifier(fail_receipt=True)
        promo = await make_promo()
        snapshot = await paid_snapshot(make_order, promo_code_id=promo.id)
        await add_cart_items(snapshot.user_id)
        totals = compute_totals(snapshot.subtotal, promo.discount_percent, snapshot.shipping_fee)

        report = await SideEffectOrchestrator(order_store, attribution_store, notifier).run(
            snapshot, totals, resolved_for(promo)
        )

        assert not report.ok
        assert [f.step for f in report.failures] == [STEP_RECEIPT]
        assert report.outcome(STEP_ALERT).ok
        assert len(notifier.alerts) == 1
        assert await count_cart_items(snapshot.user_id) == 0
        assert await attribution_store.get_attribution(snapshot.id) is not None

    async def test_attribution_failure_is_isolated(
        self, db_session, order_store, notifier, make_order, make_promo,
        add_cart_items, count_cart_items,
    ) -> None:
        promo = await make_promo()
        snapshot = await paid_snapshot(make_order, promo_code_id=promo.id)
        await add_cart_items(snapshot.user_id)
        totals = compute_totals(snapshot.subtotal, promo.discount_percent, snapshot.shipping_fee)

        report = await SideEffectOrchestrator(
            order_store, BrokenAttributionStore(db_session), notifier
        ).run(snapshot, totals, resolved_for(promo))

        failure = report.outcome(STEP_ATTRIBUTION)
        assert not failure.ok
        assert "attribution table unavailable" in failure.error
        assert report.outcome(STEP_PROMO_USAGE).ok
        assert await count_cart_items(snapshot.user_id) == 0
        assert len(notifier.receipts) == 1

        order = await order_store.get_order(snapshot.id)
        assert order.status == OrderStatus.PAID.value

    async def test_slow_notifier_times_out(
        self, order_store, attribution_store, make_order,
    ) -> None:
        notifier = FakeNotifier(delay=1.0)
        snapshot = await paid_snapshot(make_order)
        totals = compute_totals(snapshot.subtotal, 0, snapshot.shipping_fee)

        report = await SideEffectOrchestrator(
            order_store, attribution_store, notifier, notifier_timeout=0.05
        ).run(snapshot, totals, None)

        assert not report.outcome(STEP_RECEIPT).ok
        assert report.outcome(STEP_ALERT).ok

    async def test_organic_guest_order_skips_steps(
        self, order_store, attribution_store, notifier, make_order,
    ) -> None:
        snapshot = await paid_snapshot(make_order, user_id=None)
        totals = compute_totals(snapshot.subtotal, 0, snapshot.shipping_fee)

        report = await SideEffectOrchestrator(order_store, attribution_store, notifier).run(
            snapshot, totals, None
        )

        assert report.ok
        assert report.outcome(STEP_ATTRIBUTION).skipped
        assert report.outcome(STEP_PROMO_USAGE).skipped
        assert report.outcome(STEP_CART).skipped
        assert report.commission_amount is None
        assert await attribution_store.get_attribution(snapshot.id) is None
        _, attribution, commission = notifier.alerts[0]
        assert attribution is None
        assert commission is None

    async def test_only_this_buyers_cart_is_cleared(
        self, order_store, attribution_store, notifier, make_order,
        add_cart_items, count_cart_items,
    ) -> None:
        snapshot = await paid_snapshot(make_order)
        other_user = uuid.uuid4()
        await add_cart_items(snapshot.user_id)
        await add_cart_items(other_user, count=2)
        totals = compute_totals(snapshot.subtotal, 0, snapshot.shipping_fee)

        await SideEffectOrchestrator(order_store, attribution_store, notifier).run(
            snapshot, totals, None
        )

        assert await count_cart_items(snapshot.user_id) == 0
        assert await count_cart_items(other_user) == 2

    async def test_steps_are_recorded_in_trace(
        self, order_store, attribution_store, make_order, make_promo,
    ) -> None:
        promo = await make_promo()
        snapshot = await paid_snapshot(make_order, promo_code_id=promo.id, user_id=None)
        totals = compute_totals(snapshot.subtotal, promo.discount_percent, snapshot.shipping_fee)
        notifier = FakeNotifier(fail_receipt=True)

        with confirmation_trace() as trace:
            report = await SideEffectOrchestrator(order_store, attribution_store, notifier).run(
                snapshot, totals, resolved_for(promo)
            )

        recorded = {
            entry["name"]: entry["step"]
            for entry in trace.steps
            if entry["step"].startswith("side_effect.")
        }
        assert recorded == {
            STEP_ATTRIBUTION: "side_effect.ok",
            STEP_PROMO_USAGE: "side_effect.ok",
            STEP_CART: "side_effect.skipped",
            STEP_RECEIPT: "side_effect.failed",
            STEP_ALERT: "side_effect.ok",
        }
        assert len(report.outcomes) == 5
        assert len(notifier.alerts) == 1
