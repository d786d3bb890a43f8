"""
Payment confirmation errors.

Everything up to and including the paid commit raises one of these and is
returned to the caller with `status_code`. `SideEffectError` is only ever
recorded in logs and the diagnostics trace.
"""
from typing import Optional


class PaymentConfirmationError(Exception):
    """Base error for the payment confirmation pipeline."""
    status_code: int = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class ValidationError(PaymentConfirmationError):
    """Missing or malformed input. No mutation occurred."""
    status_code = 400


class AuthenticationError(PaymentConfirmationError):
    """Gateway signature mismatch. No mutation occurred."""
    status_code = 400


class NotFoundError(PaymentConfirmationError):
    """Unknown order. No mutation occurred."""
    status_code = 404


class ConflictError(PaymentConfirmationError):
    """Order is not in a payable status. No mutation occurred."""
    status_code = 400


class PersistenceError(PaymentConfirmationError):
    """Store write failed after verification passed; the gateway should retry."""
    status_code = 500


class SideEffectError(PaymentConfirmationError):
    """A post-payment step failed. Never surfaced to the caller."""
    status_code = 500

    def __init__(self, step: str, message: str):
        self.step = step
        super().__init__(f"{step}: {message}")
