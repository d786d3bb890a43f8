from typing import Annotated
import logging

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from app.database import get_db
from app.services.attribution_store import AttributionStore
from app.services.email_service import OrderNotifier, get_order_notifier
from app.services.order_store import OrderStore
from app.services.payment_confirmation_service import PaymentConfirmationService
from app.services.payment_order_service import PaymentOrderService
from app.services.payment_service import RazorpayGateway


logger = logging.getLogger(__name__)


def get_payment_gateway(
    settings: Annotated[Settings, Depends(get_settings)],
) -> RazorpayGateway:
    """Razorpay gateway built from the configured key pair."""
    return RazorpayGateway(
        key_id=settings.RAZORPAY_KEY_ID,
        key_secret=settings.RAZORPAY_KEY_SECRET,
    )


def get_notifier() -> OrderNotifier:
    return get_order_notifier()


# Type aliases for cleaner endpoint signatures
DB = Annotated[AsyncSession, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_settings)]
Gateway = Annotated[RazorpayGateway, Depends(get_payment_gateway)]
Notifier = Annotated[OrderNotifier, Depends(get_notifier)]


def get_confirmation_service(
    db: DB,
    gateway: Gateway,
    notifier: Notifier,
    settings: AppSettings,
) -> PaymentConfirmationService:
    """Confirmation pipeline wired to this request's session."""
    return PaymentConfirmationService(
        order_store=OrderStore(db),
        attribution_store=AttributionStore(db),
        gateway=gateway,
        notifier=notifier,
        notifier_timeout=settings.NOTIFIER_TIMEOUT_SECONDS,
    )


def get_payment_order_service(
    db: DB,
    gateway: Gateway,
    settings: AppSettings,
) -> PaymentOrderService:
    return PaymentOrderService(
        order_store=OrderStore(db),
        attribution_store=AttributionStore(db),
        gateway=gateway,
        default_currency=settings.DEFAULT_CURRENCY,
    )


ConfirmationService = Annotated[PaymentConfirmationService, Depends(get_confirmation_service)]
OrderService = Annotated[PaymentOrderService, Depends(get_payment_order_service)]
