"""
GST invoice arithmetic.

All money is ``Decimal``. Line amounts and tax amounts are rounded to paise
(2 places) half-up, i.e. away from zero; only the invoice total is rounded to
the whole rupee, with the difference kept as a signed round-off.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Iterable

from app.core.exceptions import InvoiceValidationError

PAISE = Decimal("0.01")
RUPEE = Decimal("1")
HUNDRED = Decimal("100")


def to_decimal(value: Any, field: str = "value") -> Decimal:
    """Convert int/str/float/Decimal to Decimal without float artefacts."""
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            raise InvoiceValidationError(f"{field} is not a number", field=field)
    if not result.is_finite():
        raise InvoiceValidationError(f"{field} is not a finite number", field=field)
    return result


def round_money(value: Decimal) -> Decimal:
    return value.quantize(PAISE, rounding=ROUND_HALF_UP)


def round_rupee(value: Decimal) -> Decimal:
    return value.quantize(RUPEE, rounding=ROUND_HALF_UP)


def _check_percent(value: Decimal, field: str) -> None:
    if value < 0 or value > HUNDRED:
        raise InvoiceValidationError(f"{field} must be between 0 and 100", field=field)


def calculate_line_amount(quantity: Any, rate: Any, discount_percent: Any = 0) -> Decimal:
    """
    Amount for one invoice line: quantity * rate * (1 - discount/100), to 2 places.

    Raises:
        InvoiceValidationError: negative quantity or rate, discount outside [0, 100]
    """
    quantity = to_decimal(quantity, "quantity")
    rate = to_decimal(rate, "rate")
    discount_percent = to_decimal(discount_percent, "discount_percent")

    if quantity < 0:
        raise InvoiceValidationError("quantity must not be negative", field="quantity")
    if rate < 0:
        raise InvoiceValidationError("rate must not be negative", field="rate")
    _check_percent(discount_percent, "discount_percent")

    return round_money(quantity * rate * (1 - discount_percent / HUNDRED))


@dataclass(frozen=True)
class TaxBreakdown:
    """Invoice-level totals. ``total`` is always a whole rupee amount."""
    subtotal: Decimal
    cgst_rate: Decimal
    sgst_rate: Decimal
    igst_rate: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    total_tax: Decimal
    round_off: Decimal
    total: Decimal

    @property
    def pre_round_total(self) -> Decimal:
        return self.subtotal + self.total_tax


def compute_tax_breakdown(
    items: Iterable[Any],
    cgst_rate: Any = 0,
    sgst_rate: Any = 0,
    igst_rate: Any = 0,
) -> TaxBreakdown:
    """
    Compute subtotal, CGST/SGST/IGST, round-off and total.

    ``items`` are any objects with ``quantity``, ``rate`` and ``discount_percent``
    attributes; line amounts are recomputed here and never read from the items.
    The rates are applied independently. Choosing CGST+SGST (intra-state) or
    IGST (inter-state) is up to the caller.
    """
    rates = {}
    for name, value in (("cgst_rate", cgst_rate), ("sgst_rate", sgst_rate), ("igst_rate", igst_rate)):
        rate = to_decimal(value, name)
        _check_percent(rate, name)
        rates[name] = rate

    subtotal = Decimal("0.00")
    for item in items:
        subtotal += calculate_line_amount(item.quantity, item.rate, item.discount_percent)
    subtotal = round_money(subtotal)

    cgst_amount = round_money(subtotal * rates["cgst_rate"] / HUNDRED)
    sgst_amount = round_money(subtotal * rates["sgst_rate"] / HUNDRED)
    igst_amount = round_money(subtotal * rates["igst_rate"] / HUNDRED)
    total_tax = cgst_amount + sgst_amount + igst_amount

    pre_round = subtotal + total_tax
    total = round_money(round_rupee(pre_round))
    round_off = total - pre_round

    return TaxBreakdown(
        subtotal=subtotal,
        cgst_rate=rates["cgst_rate"],
        sgst_rate=rates["sgst_rate"],
        igst_rate=rates["igst_rate"],
        cgst_amount=cgst_amount,
        sgst_amount=sgst_amount,
        igst_amount=igst_amount,
        total_tax=total_tax,
        round_off=round_off,
        total=total,
    )
