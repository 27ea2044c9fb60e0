from dataclasses import dataclass
from decimal import Decimal

import pytest

from app.core.exceptions import InvoiceValidationError
from app.services.billing_calculator import calculate_line_amount, compute_tax_breakdown


@dataclass
class Line:
    quantity: Decimal
    rate: Decimal
    discount_percent: Decimal = Decimal("0")


def test_line_amount_applies_discount():
    assert calculate_line_amount(2, 100, 10) == Decimal("180.00")


def test_line_amount_rounds_half_away_from_zero():
    # 1 * 0.125 -> 0.13, not banker's 0.12
    assert calculate_line_amount("1", "0.125", "0") == Decimal("0.13")
    assert calculate_line_amount("3", "33.335", "0") == Decimal("100.01")


def test_line_amount_accepts_floats_without_binary_noise():
    assert calculate_line_amount(0.1, 3, 0) == Decimal("0.30")


def test_full_discount_gives_zero():
    assert calculate_line_amount(5, 250, 100) == Decimal("0.00")


@pytest.mark.parametrize(
    "quantity,rate,discount,field",
    [
        (-1, 100, 0, "quantity"),
        (1, -100, 0, "rate"),
        (1, 100, -5, "discount_percent"),
        (1, 100, 101, "discount_percent"),
    ],
)
def test_out_of_range_inputs_are_rejected(quantity, rate, discount, field):
    with pytest.raises(InvoiceValidationError) as exc_info:
        calculate_line_amount(quantity, rate, discount)
    assert exc_info.value.field == field


def test_intra_state_breakdown_with_negative_round_off():
    breakdown = compute_tax_breakdown(
        [Line(Decimal("2"), Decimal("100"), Decimal("10"))],
        cgst_rate=9, sgst_rate=9, igst_rate=0,
    )

    assert breakdown.subtotal == Decimal("180.00")
    assert breakdown.cgst_amount == Decimal("16.20")
    assert breakdown.sgst_amount == Decimal("16.20")
    assert breakdown.igst_amount == Decimal("0.00")
    assert breakdown.total_tax == Decimal("32.40")
    assert breakdown.pre_round_total == Decimal("212.40")
    assert breakdown.round_off == Decimal("-0.40")
    assert breakdown.total == Decimal("212")


def test_inter_state_breakdown_rounds_down():
    breakdown = compute_tax_breakdown(
        [Line(Decimal("3"), Decimal("99.90")), Line(Decimal("1"), Decimal("10.50"))],
        igst_rate=18,
    )

    assert breakdown.subtotal == Decimal("310.20")
    assert breakdown.igst_amount == Decimal("55.84")
    assert breakdown.cgst_amount == Decimal("0.00")
    assert breakdown.round_off == Decimal("-0.04")
    assert breakdown.total == Decimal("366")


def test_exact_half_rupee_rounds_up():
    breakdown = compute_tax_breakdown([Line(Decimal("1"), Decimal("100.50"))])
    assert breakdown.total == Decimal("101")
    assert breakdown.round_off == Decimal("0.50")


@pytest.mark.parametrize(
    "lines,rates",
    [
        ([Line(Decimal("7"), Decimal("13.37"), Decimal("3.5"))], (2.5, 2.5, 0)),
        ([Line(Decimal("0.333"), Decimal("999.99"))], (0, 0, 28)),
        ([Line(Decimal("12"), Decimal("0.99")), Line(Decimal("1"), Decimal("0.01"))], (6, 6, 0)),
        ([], (9, 9, 0)),
    ],
)
def test_total_is_whole_and_consistent(lines, rates):
    breakdown = compute_tax_breakdown(lines, *rates)

    assert breakdown.total == breakdown.total.to_integral_value()
    assert breakdown.total == breakdown.subtotal + breakdown.total_tax + breakdown.round_off
    assert abs(breakdown.round_off) <= Decimal("0.50")
    assert breakdown.subtotal == sum(
        (calculate_line_amount(l.quantity, l.rate, l.discount_percent) for l in lines), Decimal("0")
    )


def test_rate_above_hundred_is_rejected():
    with pytest.raises(InvoiceValidationError) as exc_info:
        compute_tax_breakdown([Line(Decimal("1"), Decimal("1"))], cgst_rate=150)
    assert exc_info.value.field == "cgst_rate"
