from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from salonhub.domain.coupons.resolver import (
    compute_discount,
    evaluate_coupon,
    format_amount,
    usage_window_start,
)

TODAY = date(2026, 6, 15)


def make_coupon(**overrides):
    data = dict(
        status="active",
        valid_from=date(2026, 6, 1),
        valid_till=date(2026, 6, 30),
        discount_type="percentage",
        discount_value=Decimal("10"),
        minimum_spend=Decimal("0"),
        maximum_discount=None,
        usage_limit=1,
        limit_refresh_days=30,
        services_all_included=True,
        products_all_included=True,
        memberships_all_included=True,
        service_ids=[],
        product_ids=[],
        membership_ids=[],
    )
    data.update(overrides)
    return SimpleNamespace(**data)


def test_percentage_discount_respects_maximum():
    coupon = make_coupon(discount_value=Decimal("50"), maximum_discount=Decimal("75"))
    result = evaluate_coupon(coupon, 400, as_of=TODAY)

    assert result.eligible
    assert result.discount_amount == Decimal("75.00")
    assert result.final_amount == Decimal("325.00")


@pytest.mark.parametrize("order", ["0", "30", "99.99", "1000"])
def test_flat_discount_never_exceeds_order(order):
    coupon = make_coupon(discount_type="flat", discount_value=Decimal("100"))
    discount = compute_discount(coupon, Decimal(order))

    assert discount == min(Decimal("100"), Decimal(order))


def test_minimum_spend_message():
    coupon = make_coupon(minimum_spend=Decimal("500"))
    result = evaluate_coupon(coupon, 400, as_of=TODAY)

    assert not result.eligible
    assert result.reason == "Minimum spend of $500 required to use this coupon"


def test_inactive_or_out_of_window_is_invalid():
    assert evaluate_coupon(make_coupon(status="inactive"), 100, as_of=TODAY).reason == (
        "Invalid or expired coupon code"
    )
    assert evaluate_coupon(make_coupon(), 100, as_of=date(2026, 7, 1)).reason == (
        "Invalid or expired coupon code"
    )


def test_window_bounds_are_inclusive():
    coupon = make_coupon()
    assert evaluate_coupon(coupon, 100, as_of=date(2026, 6, 1)).eligible
    assert evaluate_coupon(coupon, 100, as_of=date(2026, 6, 30)).eligible


def test_usage_limit_reached():
    coupon = make_coupon(usage_limit=2)

    assert evaluate_coupon(coupon, 100, usage_count=1, as_of=TODAY).eligible
    result = evaluate_coupon(coupon, 100, usage_count=2, as_of=TODAY)
    assert result.reason == "Coupon usage limit of 2 reached"


def test_unknown_customer_skips_usage_check():
    coupon = make_coupon(usage_limit=1)
    assert evaluate_coupon(coupon, 100, usage_count=None, as_of=TODAY).eligible


def test_missing_usage_limit_is_unlimited():
    coupon = make_coupon(usage_limit=None)
    assert evaluate_coupon(coupon, 100, usage_count=25, as_of=TODAY).eligible


def test_any_overlap_with_inclusions_is_enough():
    coupon = make_coupon(services_all_included=False, service_ids=["svc-1"])

    assert evaluate_coupon(coupon, 100, service_ids=["svc-1", "svc-2"], as_of=TODAY).eligible
    result = evaluate_coupon(coupon, 100, service_ids=["svc-2"], as_of=TODAY)
    assert result.reason == "Coupon is not applicable to the selected services"


def test_category_without_selection_is_not_checked():
    coupon = make_coupon(products_all_included=False, product_ids=["p-1"])
    assert evaluate_coupon(coupon, 100, service_ids=["svc-9"], as_of=TODAY).eligible


def test_format_amount():
    assert format_amount(Decimal("500")) == "500"
    assert format_amount(Decimal("499.5")) == "499.50"


def test_usage_window_start():
    now = datetime(2026, 6, 15, 12, tzinfo=timezone.utc)
    assert usage_window_start(now, 30) == datetime(2026, 5, 16, 12, tzinfo=timezone.utc)
