"""
Attribution Service

Works out which influencer and promo an order should be credited to.

Resolution Flow (first match wins):
1. Existing attribution row for the order (terms reused verbatim)
2. Promo attached to the order at checkout (promo_code_id or promo_snapshot)
3. Promo named in the gateway order notes (type=promo)
4. Nothing: organic order, no attribution

Steps 2 and 3 always take percentages from the current PromoCode row.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence
import uuid
import logging

from app.core.trace import trace_step
from app.models.order import Order
from app.models.promo_code import PromoCode
from app.services.attribution_store import AttributionStore
from app.services.totals_service import to_decimal

logger = logging.getLogger(__name__)


SOURCE_EXISTING = "existing"
SOURCE_PROMO = "promo"


@dataclass(frozen=True)
class ResolvedAttribution:
    """Commercial terms that apply to an order."""
    influencer_id: Optional[uuid.UUID]
    promo_code_id: Optional[uuid.UUID]
    discount_percent: Decimal
    commission_percent: Decimal
    source: str
    strategy: str

    @classmethod
    def from_promo(
        cls,
        promo: PromoCode,
        strategy: str,
        fallback_influencer_id: Optional[uuid.UUID] = None,
    ) -> "ResolvedAttribution":
        return cls(
            influencer_id=promo.influencer_id or fallback_influencer_id,
            promo_code_id=promo.id,
            discount_percent=to_decimal(promo.discount_percent),
            commission_percent=to_decimal(promo.commission_percent),
            source=SOURCE_PROMO,
            strategy=strategy,
        )


def parse_uuid(value: Any) -> Optional[uuid.UUID]:
    """Parse a UUID from notes/snapshot values; None if absent or malformed."""
    if value is None or value == "":
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, AttributeError, TypeError):
        return None


class AttributionStrategy:
    """One source of attribution. Returns None when it has nothing to offer."""
    name = "base"

    def __init__(self, store: AttributionStore):
        self.store = store

    async def resolve(self, order: Order, notes: Dict[str, Any]) -> Optional[ResolvedAttribution]:
        raise NotImplementedError

    async def _promo(self, promo_id: Optional[uuid.UUID]) -> Optional[PromoCode]:
        if promo_id is None:
            return None
        promo = await self.store.get_promo_by_id(promo_id)
        if promo is None:
            logger.warning(f"{self.name}: promo {promo_id} not found, skipping")
            trace_step("attribution.promo_missing", strategy=self.name, promo_code_id=promo_id)
        return promo


class ExistingAttributionStrategy(AttributionStrategy):
    """Re-confirmation must not change the terms already recorded."""
    name = "existing_attribution"

    async def resolve(self, order, notes):
        existing = await self.store.get_attribution(order.id)
        if existing is None or existing.influencer_id is None:
            return None
        return ResolvedAttribution(
            influencer_id=existing.influencer_id,
            promo_code_id=existing.promo_code_id,
            discount_percent=to_decimal(existing.discount_percent),
            commission_percent=to_decimal(existing.commission_percent),
            source=SOURCE_EXISTING,
            strategy=self.name,
        )


class OrderPromoStrategy(AttributionStrategy):
    """Promo attached to the order at checkout."""
    name = "order_promo"

    async def resolve(self, order, notes):
        promo_id = order.promo_code_id
        if promo_id is None and isinstance(order.promo_snapshot, dict):
            snapshot = order.promo_snapshot
            promo_id = parse_uuid(snapshot.get("id") or snapshot.get("promo_code_id"))

        promo = await self._promo(promo_id)
        if promo is None:
            return None
        return ResolvedAttribution.from_promo(promo, self.name)


class GatewayNotesStrategy(AttributionStrategy):
    """Promo context carried on the gateway order notes."""
    name = "gateway_notes"

    async def resolve(self, order, notes):
        if not notes or notes.get("type") != "promo":
            return None

        promo_id = parse_uuid(notes.get("promo_code_id"))
        influencer_id = parse_uuid(notes.get("influencer_id"))
        if promo_id is None or influencer_id is None:
            return None

        promo = await self._promo(promo_id)
        if promo is None:
            return None
        return ResolvedAttribution.from_promo(promo, self.name, fallback_influencer_id=influencer_id)


class AttributionResolver:
    """Runs strategies in order and returns the first result."""

    def __init__(self, store: AttributionStore, strategies: Optional[Sequence[AttributionStrategy]] = None):
        self.store = store
        self.strategies: List[AttributionStrategy] = list(strategies) if strategies is not None else [
            ExistingAttributionStrategy(store),
            OrderPromoStrategy(store),
            GatewayNotesStrategy(store),
        ]

    async def resolve(
        self,
        order: Order,
        notes: Optional[Dict[str, Any]] = None,
    ) -> Optional[ResolvedAttribution]:
        """
        Resolve attribution for an order.

        Args:
            order: The order being confirmed
            notes: Gateway order notes, if fetched

        Returns:
            ResolvedAttribution, or None for an organic order
        """
        notes = notes or {}
        for strategy in self.strategies:
            resolved = await strategy.resolve(order, notes)
            if resolved is not None:
                logger.info(
                    f"Order {order.id} attributed via {strategy.name}: "
                    f"influencer={resolved.influencer_id} promo={resolved.promo_code_id}"
                )
                trace_step(
                    "attribution.resolved",
                    strategy=strategy.name,
                    source=resolved.source,
                    influencer_id=resolved.influencer_id,
                    promo_code_id=resolved.promo_code_id,
                    discount_percent=resolved.discount_percent,
                    commission_percent=resolved.commission_percent,
                )
                return resolved

        logger.info(f"Order {order.id} has no attribution")
        trace_step("attribution.none")
        return None
