"""
Payment Service - Razorpay Integration

Handles the gateway side of the storefront checkout:
- Verify payment signatures
- Fetch gateway orders (captured amount and notes)
- Create Razorpay orders
"""

import asyncio
import logging
import hmac
import hashlib
from typing import Optional, Dict, Any

import razorpay
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


def verify_payment_signature(
    gateway_order_id: str,
    gateway_payment_id: str,
    signature: str,
    secret: str,
) -> bool:
    """
    Verify a Razorpay checkout signature.

    The signature is HMAC-SHA256 over "<order_id>|<payment_id>" keyed by the
    key secret, hex encoded. Compared in constant time.

    Returns:
        True only if the signature matches
    """
    if not secret or not signature:
        return False

    payload = f"{gateway_order_id}|{gateway_payment_id}"
    expected_signature = hmac.new(
        secret.encode(),
        payload.encode(),
        hashlib.sha256
    ).hexdigest()

    return hmac.compare_digest(expected_signature.encode(), signature.encode())


class GatewayOrder(BaseModel):
    """Gateway order details needed at confirmation time."""
    gateway_order_id: str
    captured_amount_minor: Optional[int] = None  # In paise
    currency: Optional[str] = None
    status: Optional[str] = None
    notes: Dict[str, Any] = Field(default_factory=dict)


class RazorpayGateway:
    """
    Razorpay client wrapper.

    The SDK is blocking, so calls run in a worker thread.
    """

    def __init__(self, key_id: str, key_secret: str, client: Optional[razorpay.Client] = None):
        self.key_id = key_id
        self.key_secret = key_secret
        self.client = client or razorpay.Client(auth=(key_id, key_secret))

    def verify_signature(self, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
        """Verify a checkout signature with this account's key secret."""
        return verify_payment_signature(
            gateway_order_id,
            gateway_payment_id,
            signature,
            self.key_secret,
        )

    async def fetch_gateway_order(self, gateway_order_id: str) -> GatewayOrder:
        """
        Fetch a Razorpay order.

        Args:
            gateway_order_id: Razorpay order ID

        Returns:
            GatewayOrder with amount_paid (paise) and notes
        """
        order = await asyncio.to_thread(self.client.order.fetch, gateway_order_id)

        # Razorpay sends an empty list when an order has no notes
        notes = order.get("notes") or {}
        if not isinstance(notes, dict):
            notes = {}

        amount_paid = order.get("amount_paid")
        return GatewayOrder(
            gateway_order_id=order.get("id", gateway_order_id),
            captured_amount_minor=int(amount_paid) if amount_paid else None,
            currency=order.get("currency"),
            status=order.get("status"),
            notes=notes,
        )

    async def create_order(
        self,
        amount_minor: int,
        currency: str,
        receipt: str,
        notes: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Create a Razorpay order for payment.

        Args:
            amount_minor: Amount in paise
            currency: ISO currency code
            receipt: Our order ID
            notes: Key/value notes echoed back at confirmation

        Returns:
            Razorpay order entity
        """
        order_data = {
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt,
            # Razorpay notes values must be strings
            "notes": {key: "" if value is None else str(value) for key, value in notes.items()},
        }
        razorpay_order = await asyncio.to_thread(self.client.order.create, data=order_data)

        logger.info(f"Created Razorpay order {razorpay_order['id']} for order {receipt}")
        return razorpay_order
