"""
Payment API endpoints for Razorpay integration.

Handles:
- Payment order creation (with promo attribution seeding)
- Payment confirmation
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from app.api.deps import AppSettings, ConfirmationService, OrderService
from app.core.exceptions import PaymentConfirmationError
from app.core.trace import confirmation_trace, trace_step
from app.schemas.payment import (
    CreatePaymentOrderRequest,
    CreatePaymentOrderResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)

logger = logging.getLogger(__name__)


router = APIRouter(tags=["Payments"])


def _error_response(
    status_code: int,
    message: str,
    trace: Optional[List[Dict[str, Any]]] = None,
) -> JSONResponse:
    body = VerifyPaymentResponse(ok=False, error=message, trace=trace)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", exclude_none=True),
    )


@router.post(
    "/create-order",
    response_model=CreatePaymentOrderResponse,
    summary="Create a Razorpay payment order",
    description="Create the Razorpay order for a payable app order, applying an optional promo code."
)
async def create_payment_order(
    data: CreatePaymentOrderRequest,
    service: OrderService,
    settings: AppSettings,
):
    """
    Create a Razorpay order for payment.

    Called during checkout. The returned details are used by the frontend
    to launch Razorpay's payment modal.
    """
    try:
        payment_order = await service.create_payment_order(data.order_id, data.promo_code)
    except PaymentConfirmationError as e:
        return _error_response(e.status_code, e.message)
    except Exception as e:
        logger.exception(f"Failed to create payment order for {data.order_id}: {e}")
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Failed to create payment order",
        )

    return CreatePaymentOrderResponse(
        key_id=settings.RAZORPAY_KEY_ID,
        razorpay_order_id=payment_order.gateway_order_id,
        amount=payment_order.amount_minor,
        currency=payment_order.currency,
        order_id=payment_order.order_id,
        notes=payment_order.notes,
    )


@router.post(
    "/verify",
    response_model=VerifyPaymentResponse,
    response_model_exclude_none=True,
    summary="Confirm payment after checkout",
    description="Verify the Razorpay signature and mark the order paid exactly once."
)
async def verify_payment(
    data: VerifyPaymentRequest,
    service: ConfirmationService,
    settings: AppSettings,
):
    """
    Confirm a Razorpay payment.

    Safe to call repeatedly: a replay for an order that is already paid
    succeeds with `already_paid: true` and changes nothing. The step trace
    is returned only for `debug` requests when tracing is enabled.
    """
    include_trace = data.debug and settings.PAYMENT_TRACE_ENABLED

    with confirmation_trace() as trace:
        try:
            result = await service.confirm(data)
        except PaymentConfirmationError as e:
            trace_step("confirmation.failed", error=e.message, status_code=e.status_code)
            return _error_response(
                e.status_code,
                e.message,
                trace.steps if include_trace else None,
            )
        except Exception as e:
            logger.exception(f"Payment confirmation failed for order {data.app_order_id}: {e}")
            trace_step("confirmation.failed", error=type(e).__name__)
            return _error_response(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Payment confirmation failed",
                trace.steps if include_trace else None,
            )

        trace_step("confirmation.ok", already_paid=result.already_paid)

    return VerifyPaymentResponse(
        ok=True,
        order_id=result.order_id,
        order_number=result.order_number,
        already_paid=result.already_paid,
        trace=trace.steps if include_trace else None,
    )
