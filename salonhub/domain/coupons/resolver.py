"""
Coupon eligibility evaluation.

``evaluate_coupon`` is pure: the caller supplies the usage count for the
rolling window. Checks run in a fixed order and stop at the first failure.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from ..billing.calculator import (
    HUNDRED,
    ZERO,
    normalize_discount_type,
    round_money,
    to_decimal,
)


@dataclass(frozen=True)
class CouponEligibility:
    eligible: bool
    reason: Optional[str] = None
    discount_amount: Optional[Decimal] = None
    final_amount: Optional[Decimal] = None


def usage_window_start(now: datetime, limit_refresh_days: Optional[int]) -> datetime:
    return now - timedelta(days=limit_refresh_days or 0)


def _as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def _overlaps(selected: Iterable[str], allowed: Iterable[str]) -> bool:
    allowed = {str(a) for a in allowed}
    return any(str(s) in allowed for s in selected)


def format_amount(value: Decimal) -> str:
    value = round_money(value)
    return f"{value:.2f}" if value != value.to_integral() else f"{value:.0f}"


def check_window(coupon, as_of: date) -> Optional[str]:
    as_of = _as_date(as_of)
    if coupon.status != "active":
        return "Invalid or expired coupon code"
    if not (_as_date(coupon.valid_from) <= as_of <= _as_date(coupon.valid_till)):
        return "Invalid or expired coupon code"
    return None


def check_inclusions(
    coupon,
    service_ids: Iterable[str] = (),
    product_ids: Iterable[str] = (),
    membership_ids: Iterable[str] = (),
) -> Optional[str]:
    """
    Any overlap between the selection and the allow-list is enough.
    A category with nothing selected is not checked.
    """
    checks = (
        ("services", list(service_ids or ()), coupon.services_all_included, coupon.service_ids),
        ("products", list(product_ids or ()), coupon.products_all_included, coupon.product_ids),
        (
            "memberships",
            list(membership_ids or ()),
            coupon.memberships_all_included,
            coupon.membership_ids,
        ),
    )
    for category, selected, all_included, allowed in checks:
        if all_included or not selected:
            continue
        if not _overlaps(selected, allowed):
            return f"Coupon is not applicable to the selected {category}"
    return None


def compute_discount(coupon, order_amount) -> Decimal:
    order_amount = to_decimal(order_amount)
    value = to_decimal(coupon.discount_value)
    if normalize_discount_type(coupon.discount_type) == "percentage":
        discount = order_amount * value / HUNDRED
        if coupon.maximum_discount is not None:
            discount = min(discount, to_decimal(coupon.maximum_discount))
    else:
        discount = min(value, order_amount)
    discount = min(max(discount, ZERO), order_amount)
    return round_money(discount)


def evaluate_coupon(
    coupon,
    order_amount,
    service_ids: Iterable[str] = (),
    product_ids: Iterable[str] = (),
    membership_ids: Iterable[str] = (),
    usage_count: Optional[int] = 0,
    as_of: Optional[date] = None,
) -> CouponEligibility:
    """
    Decide whether ``coupon`` applies and how much it takes off.

    ``usage_count`` is the number of redemptions by the customer inside the
    refresh window; pass None when no customer is known to skip the check.
    """
    as_of = as_of or date.today()
    order_amount = round_money(order_amount)

    reason = check_window(coupon, as_of)
    if reason:
        return CouponEligibility(False, reason)

    minimum_spend = to_decimal(coupon.minimum_spend or 0)
    if order_amount < minimum_spend:
        return CouponEligibility(
            False, f"Minimum spend of ${format_amount(minimum_spend)} required to use this coupon"
        )

    # A missing limit means unlimited use
    usage_limit = coupon.usage_limit
    if usage_limit is not None and usage_count is not None and usage_count >= usage_limit:
        return CouponEligibility(False, f"Coupon usage limit of {usage_limit} reached")

    reason = check_inclusions(coupon, service_ids, product_ids, membership_ids)
    if reason:
        return CouponEligibility(False, reason)

    discount = compute_discount(coupon, order_amount)
    final_amount = max(order_amount - discount, ZERO)
    return CouponEligibility(True, None, discount, final_amount)
