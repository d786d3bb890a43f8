"""
Post-Payment Service

Operational steps that follow a successful paid commit:
1. Persist the order attribution (pending commission)
2. Count the promo use
3. Clear the buyer's cart
4. Send the buyer receipt and the internal sale alert

Every step is isolated: a failure is rolled back, logged and recorded in the
report, and the remaining steps still run. Nothing here can undo the paid
order or change the confirmation response.
"""

import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List, Optional
import logging

from app.core.exceptions import SideEffectError
from app.core.trace import trace_step
from app.models.attribution import OrderAttribution, AttributionStatus
from app.schemas.payment import PaidOrderSnapshot
from app.services.attribution_service import ResolvedAttribution
from app.services.attribution_store import AttributionStore
from app.services.email_service import OrderNotifier
from app.services.order_store import OrderStore
from app.services.totals_service import PaymentTotals, compute_commission

logger = logging.getLogger(__name__)

ATTRIBUTED_BY_CHECKOUT = "checkout"

STEP_ATTRIBUTION = "attribution"
STEP_PROMO_USAGE = "promo_usage"
STEP_CART = "cart"
STEP_RECEIPT = "notify_receipt"
STEP_ALERT = "notify_internal"


@dataclass
class StepOutcome:
    step: str
    ok: bool
    skipped: bool = False
    error: Optional[str] = None


@dataclass
class SideEffectReport:
    """Per-step outcome of the post-payment steps."""
    outcomes: List[StepOutcome] = field(default_factory=list)
    commission_amount: Optional[Decimal] = None

    @property
    def failures(self) -> List[StepOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def ok(self) -> bool:
        return not self.failures

    def outcome(self, step: str) -> Optional[StepOutcome]:
        for o in self.outcomes:
            if o.step == step:
                return o
        return None

    def as_dict(self) -> Dict[str, Any]:
        return {
            o.step: ("skipped" if o.skipped else "ok" if o.ok else o.error)
            for o in self.outcomes
        }


class SideEffectOrchestrator:
    """Runs the post-payment steps for one freshly paid order."""

    def __init__(
        self,
        order_store: OrderStore,
        attribution_store: AttributionStore,
        notifier: OrderNotifier,
        notifier_timeout: float = 10.0,
    ):
        self.order_store = order_store
        self.attribution_store = attribution_store
        self.notifier = notifier
        self.notifier_timeout = notifier_timeout

    async def run(
        self,
        order: PaidOrderSnapshot,
        totals: PaymentTotals,
        attribution: Optional[ResolvedAttribution],
    ) -> SideEffectReport:
        report = SideEffectReport()

        if attribution is not None and attribution.influencer_id is not None:
            report.commission_amount = compute_commission(
                totals.subtotal, attribution.commission_percent
            )
            await self._step(
                report, order, STEP_ATTRIBUTION,
                lambda: self._persist_attribution(order, attribution, report.commission_amount),
            )
        else:
            self._skip(report, STEP_ATTRIBUTION, "no influencer")

        if attribution is not None and attribution.promo_code_id is not None:
            await self._step(
                report, order, STEP_PROMO_USAGE,
                lambda: self._count_promo_use(attribution),
            )
        else:
            self._skip(report, STEP_PROMO_USAGE, "no promo")

        if order.user_id is not None:
            await self._step(report, order, STEP_CART, lambda: self._clear_cart(order))
        else:
            self._skip(report, STEP_CART, "guest checkout")

        await self._step(
            report, order, STEP_RECEIPT,
            lambda: self._notify(self.notifier.send_receipt(order, totals)),
        )
        await self._step(
            report, order, STEP_ALERT,
            lambda: self._notify(
                self.notifier.send_internal_alert(order, attribution, report.commission_amount)
            ),
        )

        if report.ok:
            logger.info(f"Post-payment steps complete for order {order.order_number}")
        else:
            logger.warning(
                f"Post-payment steps for order {order.order_number} had failures: {report.as_dict()}"
            )
        return report

    async def _step(
        self,
        report: SideEffectReport,
        order: PaidOrderSnapshot,
        step: str,
        action: Callable[[], Awaitable[Any]],
    ) -> None:
        try:
            result = await action()
        except Exception as e:
            # The session may hold a failed transaction from this step
            await self.order_store.db.rollback()
            error = SideEffectError(step, str(e) or type(e).__name__)
            logger.error(f"Post-payment step failed for order {order.order_number}: {error}")
            trace_step("side_effect.failed", name=step, error=error.message)
            report.outcomes.append(StepOutcome(step=step, ok=False, error=error.message))
            return

        trace_step("side_effect.ok", name=step, result=result)
        report.outcomes.append(StepOutcome(step=step, ok=True))

    def _skip(self, report: SideEffectReport, step: str, reason: str) -> None:
        trace_step("side_effect.skipped", name=step, reason=reason)
        report.outcomes.append(StepOutcome(step=step, ok=True, skipped=True))

    async def _persist_attribution(
        self,
        order: PaidOrderSnapshot,
        attribution: ResolvedAttribution,
        commission_amount: Decimal,
    ) -> str:
        record = OrderAttribution(
            order_id=order.id,
            influencer_id=attribution.influencer_id,
            promo_code_id=attribution.promo_code_id,
            attributed_by=ATTRIBUTED_BY_CHECKOUT,
            discount_percent=attribution.discount_percent,
            commission_percent=attribution.commission_percent,
            commission_amount=commission_amount,
            currency=order.currency,
            status=AttributionStatus.PENDING.value,
        )
        saved = await self.attribution_store.upsert_attribution(record)
        logger.info(
            f"Attribution recorded for order {order.order_number}: influencer "
            f"{attribution.influencer_id}, commission {commission_amount}"
        )
        return str(saved.id) if saved is not None else ""

    async def _count_promo_use(self, attribution: ResolvedAttribution) -> bool:
        counted = await self.attribution_store.increment_promo_usage(attribution.promo_code_id)
        if not counted:
            logger.warning(f"Promo {attribution.promo_code_id} not found when counting usage")
        return counted

    async def _clear_cart(self, order: PaidOrderSnapshot) -> int:
        removed = await self.order_store.clear_cart(order.user_id)
        logger.info(f"Cleared {removed} cart items for user {order.user_id}")
        return removed

    async def _notify(self, send: Awaitable[bool]) -> bool:
        return await asyncio.wait_for(send, timeout=self.notifier_timeout)
