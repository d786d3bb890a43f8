from fastapi import APIRouter

from app.api.v1.endpoints import (
    # Checkout payments (Razorpay)
    payments,
)


api_router = APIRouter(prefix="/api/v1")

# Payments
api_router.include_router(
    payments.router,
    prefix="/payments",
    tags=["Payments"]
)
