# Services module
from app.services.payment_service import RazorpayGateway, verify_payment_signature
from app.services.order_store import OrderStore
from app.services.attribution_store import AttributionStore
from app.services.attribution_service import AttributionResolver, ResolvedAttribution
from app.services.order_finalizer import OrderFinalizer
from app.services.post_payment_service import SideEffectOrchestrator, SideEffectReport
from app.services.email_service import EmailService, SMSService, OrderNotifier

# Checkout payment flows
from app.services.payment_order_service import PaymentOrderService
from app.services.payment_confirmation_service import PaymentConfirmationService

__all__ = [
    "RazorpayGateway",
    "verify_payment_signature",
    "OrderStore",
    "AttributionStore",
    "AttributionResolver",
    "ResolvedAttribution",
    "OrderFinalizer",
    "SideEffectOrchestrator",
    "SideEffectReport",
    "EmailService",
    "SMSService",
    "OrderNotifier",
    # Checkout payment flows
    "PaymentOrderService",
    "PaymentConfirmationService",
]
