"""
Payment totals.

All money is Decimal rounded to 2 places with ROUND_HALF_UP (half away
from zero). Razorpay reports amounts in paise.

Example:
- Subtotal: ₹1,000.00, discount 10%, shipping ₹50
- Discount: ₹100.00
- Local total: ₹950.00
- Gateway captured 95000 paise -> persisted total ₹950.00
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_decimal(value: Optional[Number]) -> Decimal:
    """Convert to Decimal without going through binary floats."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round2(value: Number) -> Decimal:
    """Round to 2 decimal places, half away from zero."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def paise_to_rupees(amount_minor: int) -> Decimal:
    """Convert gateway minor units to a 2-place amount."""
    return round2(Decimal(int(amount_minor)) / HUNDRED)


def rupees_to_paise(amount: Number) -> int:
    """Convert an amount to gateway minor units."""
    return int((round2(amount) * HUNDRED).to_integral_value(rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class PaymentTotals:
    """Amounts computed for a confirmation."""
    subtotal: Decimal
    shipping_fee: Decimal
    discount_percent: Decimal
    discount_amount: Decimal
    local_total: Decimal
    total: Decimal
    captured_amount: Optional[Decimal] = None

    @property
    def matches_gateway(self) -> bool:
        return self.captured_amount is None or self.captured_amount == self.local_total


def compute_totals(
    subtotal: Number,
    discount_percent: Number,
    shipping_fee: Number,
    captured_amount_minor: Optional[int] = None,
) -> PaymentTotals:
    """
    Compute discount and the total to persist.

    The gateway's captured amount, when reported, is the persisted total;
    the locally derived figure is kept for audit.
    """
    subtotal_d = round2(subtotal)
    shipping_d = round2(shipping_fee)
    percent = to_decimal(discount_percent)

    discount_amount = round2(subtotal_d * percent / HUNDRED)
    local_total = round2(subtotal_d - discount_amount + shipping_d)

    captured = None
    if captured_amount_minor is not None and int(captured_amount_minor) > 0:
        captured = paise_to_rupees(captured_amount_minor)

    return PaymentTotals(
        subtotal=subtotal_d,
        shipping_fee=shipping_d,
        discount_percent=percent,
        discount_amount=discount_amount,
        local_total=local_total,
        total=captured if captured is not None else local_total,
        captured_amount=captured,
    )


def compute_commission(subtotal: Number, commission_percent: Number) -> Decimal:
    """Commission is always a share of the subtotal, whatever total was persisted."""
    return round2(round2(subtotal) * to_decimal(commission_percent) / HUNDRED)
