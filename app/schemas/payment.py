"""Payment schemas for Razorpay API requests/responses."""
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
import uuid

from app.schemas.base import BaseResponseSchema


class VerifyPaymentRequest(BaseModel):
    """
    Payment confirmation relayed by the checkout client (or gateway).

    Required fields are validated by the confirmation service so that a
    missing field is reported as a 400 before any store access.
    """
    razorpay_order_id: Optional[str] = Field(None, description="Razorpay order ID")
    razorpay_payment_id: Optional[str] = Field(None, description="Razorpay payment ID")
    razorpay_signature: Optional[str] = Field(None, description="Razorpay signature for verification")
    app_order_id: Optional[str] = Field(None, description="Internal order ID")
    method: Optional[str] = Field(None, description="Payment method tag, e.g. upi or card")
    raw: Optional[Dict[str, Any]] = Field(None, description="Raw gateway payload kept for audit")
    debug: bool = Field(False, description="Return a step-by-step trace")


class VerifyPaymentResponse(BaseModel):
    """Result of a payment confirmation."""
    ok: bool
    order_id: Optional[uuid.UUID] = None
    order_number: Optional[str] = None
    already_paid: Optional[bool] = None
    error: Optional[str] = None
    trace: Optional[List[Dict[str, Any]]] = None


class CreatePaymentOrderRequest(BaseModel):
    """API request to create a Razorpay order for an app order."""
    order_id: uuid.UUID = Field(..., description="Internal order ID")
    promo_code: Optional[str] = Field(None, max_length=50, description="Promo code entered at checkout")


class CreatePaymentOrderResponse(BaseModel):
    """Details the checkout needs to open the Razorpay modal."""
    ok: bool = True
    key_id: str
    razorpay_order_id: str
    amount: int  # In paise
    currency: str
    order_id: uuid.UUID
    notes: Dict[str, Any] = Field(default_factory=dict)


class PaidOrderSnapshot(BaseResponseSchema):
    """Read-only copy of a paid order handed to post-payment steps."""
    id: uuid.UUID
    order_number: str
    user_id: Optional[uuid.UUID] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    subtotal: Decimal
    shipping_fee: Decimal
    discount_total: Decimal
    total: Decimal
    currency: str
    status: str
    payment_method: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    paid_at: Optional[datetime] = None
