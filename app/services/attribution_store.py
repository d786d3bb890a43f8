"""
Attribution Store

Promo code lookups and order attribution persistence.
"""

from datetime import datetime, timezone
from typing import Optional
import uuid
import logging

from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from app.models.attribution import OrderAttribution, AttributionStatus
from app.models.promo_code import PromoCode, normalize_promo_code

logger = logging.getLogger(__name__)


class AttributionStore:
    """Attribution and promo persistence backed by an async SQLAlchemy session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_attribution(self, order_id: uuid.UUID) -> Optional[OrderAttribution]:
        stmt = (
            select(OrderAttribution)
            .where(OrderAttribution.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_promo_by_id(self, promo_id: uuid.UUID) -> Optional[PromoCode]:
        result = await self.db.execute(
            select(PromoCode).where(PromoCode.id == promo_id)
        )
        return result.scalar_one_or_none()

    async def get_promo_by_code(self, code: str) -> Optional[PromoCode]:
        """Lookup of an active promo code. Codes are stored upper-case."""
        result = await self.db.execute(
            select(PromoCode).where(
                PromoCode.code == normalize_promo_code(code),
                PromoCode.is_active.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def upsert_attribution(self, record: OrderAttribution) -> OrderAttribution:
        """
        Insert the attribution, or update the existing row for the order.

        The insert runs in a savepoint so a unique-constraint conflict on
        `order_id` only undoes the insert. Commits on success.
        """
        try:
            async with self.db.begin_nested():
                self.db.add(record)
                await self.db.flush()
        except IntegrityError:
            logger.info(f"Attribution for order {record.order_id} exists, updating")
            if record in self.db:
                self.db.expunge(record)
            await self.db.execute(
                update(OrderAttribution)
                .where(OrderAttribution.order_id == record.order_id)
                .values(
                    influencer_id=record.influencer_id,
                    promo_code_id=record.promo_code_id,
                    attributed_by=record.attributed_by,
                    discount_percent=record.discount_percent,
                    commission_percent=record.commission_percent,
                    commission_amount=record.commission_amount,
                    currency=record.currency,
                    status=record.status,
                    updated_at=datetime.now(timezone.utc),
                )
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            return await self.get_attribution(record.order_id)

        await self.db.commit()
        return record

    async def increment_promo_usage(self, promo_id: uuid.UUID) -> bool:
        """Bump the promo's usage counter. Returns False if the promo is gone."""
        result = await self.db.execute(
            update(PromoCode)
            .where(PromoCode.id == promo_id)
            .values(used_count=PromoCode.used_count + 1)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return (result.rowcount or 0) == 1

    async def delete_pending_attribution(self, order_id: uuid.UUID) -> int:
        """
        Drop a seeded attribution that has not been confirmed yet.

        Flushes without committing so the caller's next commit (or rollback)
        covers it. Returns the number of rows removed.
        """
        result = await self.db.execute(
            delete(OrderAttribution)
            .where(
                OrderAttribution.order_id == order_id,
                OrderAttribution.status == AttributionStatus.PENDING.value,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
