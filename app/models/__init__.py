# Models module
from app.models.order import Order, OrderStatus, OrderStatusHistory, PAYABLE_STATUSES
from app.models.promo_code import PromoCode
from app.models.attribution import OrderAttribution, AttributionStatus
from app.models.cart import CartItem

__all__ = [
    "Order",
    "OrderStatus",
    "OrderStatusHistory",
    "PAYABLE_STATUSES",
    "PromoCode",
    "OrderAttribution",
    "AttributionStatus",
    "CartItem",
]
