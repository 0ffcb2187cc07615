"""
Line and bill arithmetic.

Pure functions over Decimal; every amount is rounded half-up to cents and
derived amounts are built from the rounded parts, so
``total == base - discount + cgst + sgst`` holds exactly.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Union

Number = Union[Decimal, int, float, str]

ZERO = Decimal("0.00")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")

PERCENTAGE_TYPES = ("percentage", "percent")
FLAT_TYPES = ("flat", "fixed")


def to_decimal(value: Number) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    # str() keeps floats like 0.1 from dragging binary noise along
    return Decimal(str(value))


def round_money(value: Number) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def normalize_discount_type(discount_type: str) -> str:
    """Map accepted spellings onto ``percentage`` or ``flat``"""
    value = (discount_type or "flat").lower()
    if value in PERCENTAGE_TYPES:
        return "percentage"
    if value in FLAT_TYPES:
        return "flat"
    raise ValueError(f"Unknown discount type: {discount_type}")


@dataclass(frozen=True)
class LineAmounts:
    base: Decimal
    discount: Decimal
    taxable: Decimal
    cgst: Decimal
    sgst: Decimal
    tax: Decimal
    total: Decimal


def compute_line(
    unit_price: Number,
    quantity: int,
    discount_type: str = "flat",
    discount_value: Number = 0,
    cgst_rate: Number = 0,
    sgst_rate: Number = 0,
    tax_inclusive: bool = False,
) -> LineAmounts:
    """
    Compute one bill line.

    With ``tax_inclusive`` the unit price already contains CGST+SGST and the
    pre-tax base is extracted first; the discount and tax then apply to that
    base as in the exclusive case.
    """
    cgst_rate = to_decimal(cgst_rate)
    sgst_rate = to_decimal(sgst_rate)
    gross = to_decimal(unit_price) * to_decimal(quantity)

    if tax_inclusive:
        base = gross / (1 + (cgst_rate + sgst_rate) / HUNDRED)
    else:
        base = gross
    base = round_money(base)

    value = to_decimal(discount_value)
    if normalize_discount_type(discount_type) == "percentage":
        discount = base * min(value, HUNDRED) / HUNDRED
    else:
        discount = min(value, base)
    discount = round_money(max(discount, ZERO))

    taxable = max(base - discount, ZERO)
    cgst = round_money(taxable * cgst_rate / HUNDRED)
    sgst = round_money(taxable * sgst_rate / HUNDRED)
    tax = cgst + sgst

    return LineAmounts(
        base=base,
        discount=discount,
        taxable=taxable,
        cgst=cgst,
        sgst=sgst,
        tax=tax,
        total=taxable + tax,
    )


@dataclass(frozen=True)
class BillTotals:
    sub_total: Decimal
    line_discount: Decimal
    bill_discount: Decimal
    discount: Decimal
    cgst: Decimal
    sgst: Decimal
    tax: Decimal
    grand_total: Decimal


def compute_bill_totals(lines: Iterable[LineAmounts], bill_discount: Number = 0) -> BillTotals:
    """Aggregate lines; the bill-level discount is capped at the post-line total"""
    lines = list(lines)
    sub_total = sum((line.base for line in lines), ZERO)
    line_discount = sum((line.discount for line in lines), ZERO)
    cgst = sum((line.cgst for line in lines), ZERO)
    sgst = sum((line.sgst for line in lines), ZERO)
    tax = cgst + sgst
    lines_total = sum((line.total for line in lines), ZERO)

    extra = min(round_money(max(to_decimal(bill_discount), ZERO)), lines_total)
    discount = line_discount + extra
    grand_total = max(sub_total - discount + tax, ZERO)

    return BillTotals(
        sub_total=sub_total,
        line_discount=line_discount,
        bill_discount=extra,
        discount=discount,
        cgst=cgst,
        sgst=sgst,
        tax=tax,
        grand_total=grand_total,
    )


def payment_status(grand_total: Number, paid: Number) -> tuple[str, Decimal]:
    """Return ``(status, dues)`` for the amounts; dues never go negative"""
    grand_total = round_money(grand_total)
    paid = round_money(paid)
    dues = max(grand_total - paid, ZERO)
    if dues == ZERO:
        return "paid", dues
    if paid > ZERO:
        return "partial", dues
    return "unpaid", dues


def generate_invoice_number(now) -> str:
    """INV + YYYYMMDD + HHMMSS + milliseconds"""
    return f"INV{now:%Y%m%d}{now:%H%M%S}{now.microsecond // 1000:03d}"
