"""Totals calculator: line rounding, coupon discount and the totals law."""

from decimal import Decimal

from modules.pricing.calculator import (
    PricedLine, CouponTerms, compute_totals, compute_discount, line_tax,
)

RATE = Decimal("0.18")


def D(value):
    return Decimal(value)


class TestScenarios:
    def test_single_line_no_coupon(self):
        totals = compute_totals([PricedLine(D("500"), 2)], tax_rate=RATE, shipping=D("0"))
        assert totals.subtotal == D("1000.00")
        assert totals.discount == D("0.00")
        assert totals.tax == D("180.00")
        assert totals.total == D("1180.00")

    def test_ten_percent_coupon(self):
        coupon = CouponTerms(code="SAVE10", discount_type="percentage", value=D("10"))
        totals = compute_totals([PricedLine(D("500"), 2)], coupon, tax_rate=RATE, shipping=D("0"))
        assert totals.discount == D("100.00")
        assert totals.total == D("1080.00")


class TestRounding:
    def test_tax_is_rounded_per_line_then_summed(self):
        # 0.18 * 0.25 = 0.045 -> 0.05 per line; summing first would give 0.09
        lines = [PricedLine(D("0.25"), 1), PricedLine(D("0.25"), 1)]
        totals = compute_totals(lines, tax_rate=RATE, shipping=D("0"))
        assert totals.tax == D("0.10")

    def test_half_up(self):
        assert line_tax(D("2.25"), 1, D("0.10")) == D("0.23")


class TestDiscount:
    def test_percentage_capped_by_max_discount(self):
        coupon = CouponTerms("BIG50", "percentage", D("50"), max_discount=D("200"))
        assert compute_discount(D("1000.00"), coupon) == D("200.00")

    def test_fixed_never_exceeds_subtotal(self):
        coupon = CouponTerms("FLAT500", "fixed", D("500"))
        assert compute_discount(D("300.00"), coupon) == D("300.00")

    def test_no_coupon(self):
        assert compute_discount(D("300.00"), None) == D("0.00")


class TestTotalsLaw:
    def test_total_matches_formula(self):
        lines = [PricedLine(D("199.99"), 3), PricedLine(D("49.50"), 1), PricedLine(D("0.99"), 7)]
        coupon = CouponTerms("SAVE15", "percentage", D("15"))
        t = compute_totals(lines, coupon, tax_rate=RATE, shipping=D("40"))
        assert t.total == max(D("0"), t.subtotal - t.discount + t.shipping + t.tax)

    def test_total_never_negative(self):
        coupon = CouponTerms("FLAT", "fixed", D("10000"))
        t = compute_totals([PricedLine(D("10"), 1)], coupon, tax_rate=D("0"), shipping=D("0"))
        assert t.total == D("0.00")

    def test_incremental_equals_from_scratch(self):
        lines = [PricedLine(D("12.34"), 2), PricedLine(D("5.55"), 3), PricedLine(D("99.99"), 1)]
        built = []
        for line in lines:
            built.append(line)
            running = compute_totals(built, tax_rate=RATE, shipping=D("0"))
        assert running == compute_totals(list(lines), tax_rate=RATE, shipping=D("0"))

    def test_empty_cart_is_zero(self):
        t = compute_totals([], tax_rate=RATE)
        assert t.as_dict() == {
            "subtotal": D("0.00"), "discount": D("0.00"), "shipping": D("0.00"),
            "tax": D("0.00"), "total": D("0.00"),
        }
