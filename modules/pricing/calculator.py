"""
Pricing Module - Calculator
=============================
Cart/order totals with per-line tax and optional coupon discount.

Money is Decimal, rounded to cents with ROUND_HALF_UP at every line and then
summed; unrounded fractions are never carried into a sum.

    subtotal = Σ(unit_price × quantity)
    tax      = Σ round(unit_price × quantity × tax_rate)
    discount = percentage: round(subtotal × value / 100), capped by max_discount
               fixed:      min(value, subtotal)
    total    = max(0, subtotal − discount + shipping + tax)
"""

from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Iterable, List, Optional

from config.settings import TAX_RATE, SHIPPING_CHARGE, FREE_SHIPPING_MIN_SUBTOTAL
from common.helpers import to_money

ZERO = Decimal("0.00")

PERCENTAGE = "percentage"
FIXED = "fixed"


@dataclass(frozen=True)
class PricedLine:
    unit_price: Decimal
    quantity: int

    @property
    def line_subtotal(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)


@dataclass(frozen=True)
class CouponTerms:
    """The parts of a coupon the calculator needs."""
    code: str
    discount_type: str          # percentage / fixed
    value: Decimal
    max_discount: Optional[Decimal] = None


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    discount: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal

    def as_dict(self) -> dict:
        return asdict(self)


def line_tax(unit_price, quantity: int, tax_rate: Decimal = TAX_RATE) -> Decimal:
    """Tax of a single line, rounded half-up to cents."""
    return to_money(Decimal(str(unit_price)) * quantity * tax_rate)


def compute_discount(subtotal: Decimal, coupon: Optional[CouponTerms]) -> Decimal:
    if coupon is None or subtotal <= 0:
        return ZERO
    value = Decimal(str(coupon.value))
    if coupon.discount_type == PERCENTAGE:
        discount = to_money(subtotal * value / 100)
        if coupon.max_discount is not None and discount > coupon.max_discount:
            discount = to_money(coupon.max_discount)
    else:
        discount = to_money(value)
    # Discount cannot exceed order value
    return min(discount, subtotal)


def compute_shipping(subtotal: Decimal) -> Decimal:
    if subtotal <= 0:
        return ZERO
    if FREE_SHIPPING_MIN_SUBTOTAL is not None and subtotal >= FREE_SHIPPING_MIN_SUBTOTAL:
        return ZERO
    return to_money(SHIPPING_CHARGE)


def compute_totals(
    lines: Iterable[PricedLine],
    coupon: Optional[CouponTerms] = None,
    tax_rate: Decimal = TAX_RATE,
    shipping: Optional[Decimal] = None,
) -> Totals:
    lines: List[PricedLine] = list(lines)

    subtotal = sum((ln.line_subtotal for ln in lines), ZERO)
    tax = sum((line_tax(ln.unit_price, ln.quantity, tax_rate) for ln in lines), ZERO)
    discount = compute_discount(subtotal, coupon)
    shipping = compute_shipping(subtotal) if shipping is None else to_money(shipping)

    total = max(ZERO, subtotal - discount + shipping + tax)
    return Totals(
        subtotal=to_money(subtotal),
        discount=to_money(discount),
        shipping=to_money(shipping),
        tax=to_money(tax),
        total=to_money(total),
    )
