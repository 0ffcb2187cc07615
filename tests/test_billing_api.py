from datetime import timedelta
from decimal import Decimal

from salonhub.models import Customer, CustomerWalletHistory, Store
from salonhub.models_billing import Bill, BillItem, BillPayment
from salonhub.models_coupon import CouponUsage


def test_create_bill_computes_line_and_totals(client, seed, auth_headers, bill_payload):
    response = client.post(
        f"/billing/{seed.store_id}/bills", json=bill_payload(), headers=auth_headers("staff")
    )

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    bill = body["data"]
    assert bill["invoice_number"].startswith("INV")
    assert bill["status"] == "paid"
    assert bill["totals"]["grand_total"] == 212.4
    assert bill["totals"]["cgst"] == 16.2
    assert bill["totals"]["dues"] == 0
    line = bill["items"][0]
    assert line["name"] == "Haircut"
    assert (line["base_amount"], line["discount_amount"], line["taxable_amount"]) == (200, 20, 180)
    assert line["line_total"] == 212.4
    assert bill["payments"][0]["mode"] == "cash"
    assert bill["store"]["name"] == "Glow Studio"


def test_partial_payment_then_settle(client, db, seed, auth_headers, bill_payload, now):
    payload = bill_payload(
        payment_amount="100",
        payments=[{"mode": "upi", "amount": "100", "payment_timestamp": now.isoformat()}],
        payment_mode="upi",
    )
    response = client.post(f"/billing/{seed.store_id}/bills", json=payload, headers=auth_headers())
    bill = response.json()["data"]

    assert bill["status"] == "partial"
    assert bill["totals"]["dues"] == 112.4
    assert float(db.get(Customer, seed.customer_id).dues) == 112.4

    response = client.post(
        f"/billing/{seed.store_id}/bills/{bill['id']}/payments",
        json={"mode": "cash", "amount": "112.40"},
        headers=auth_headers(),
    )
    assert response.status_code == 200
    settled = response.json()["data"]
    assert settled["status"] == "paid"
    assert settled["totals"]["paid"] == 212.4
    assert len(settled["payments"]) == 2
    db.expire_all()
    assert float(db.get(Customer, seed.customer_id).dues) == 0


def test_idempotency_key_conflict(client, db, seed, auth_headers, bill_payload):
    headers = {**auth_headers(), "Idempotency-Key": "checkout-123"}

    first = client.post(f"/billing/{seed.store_id}/bills", json=bill_payload(), headers=headers)
    second = client.post(f"/billing/{seed.store_id}/bills", json=bill_payload(), headers=headers)

    assert first.status_code == 201
    assert second.status_code == 409
    assert second.json() == {
        "success": False,
        "message": "Bill already exists with this idempotency key",
    }
    assert db.query(Bill).count() == 1
    assert db.query(BillPayment).count() == 1


def test_blank_idempotency_key_is_ignored(client, db, seed, auth_headers, bill_payload):
    url = f"/billing/{seed.store_id}/bills"

    for key in ("", "   "):
        headers = {**auth_headers(), "Idempotency-Key": key}
        assert client.post(url, json=bill_payload(), headers=headers).status_code == 201

    assert db.query(Bill).count() == 2
    assert all(bill.idempotency_key is None for bill in db.query(Bill).all())


def test_inline_customer_is_created(client, db, seed, auth_headers, bill_payload):
    payload = bill_payload(
        customer_id=None,
        customer={"name": "Ravi", "contact_no": "+91 99887-76655", "email": "Ravi@Example.com"},
    )
    response = client.post(f"/billing/{seed.store_id}/bills", json=payload, headers=auth_headers())

    assert response.status_code == 201
    customer = db.query(Customer).filter(Customer.phone_number == "+919988776655").one()
    assert customer.name == "Ravi"
    assert customer.email == "ravi@example.com"
    assert len(customer.referral_code) == 8
    assert customer.last_visit is not None


def test_customer_rules_are_validated(client, seed, auth_headers, bill_payload):
    both = bill_payload(customer={"name": "X", "contact_no": "+919999999999"})
    neither = bill_payload(customer_id=None)
    bad_phone = bill_payload(customer_id=None, customer={"name": "X", "contact_no": "98765"})

    for payload in (both, neither, bad_phone):
        response = client.post(
            f"/billing/{seed.store_id}/bills", json=payload, headers=auth_headers()
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Validation error"


def test_payment_rules_are_validated(client, seed, auth_headers, bill_payload, now):
    stamp = now.isoformat()
    cases = [
        bill_payload(payment_mode="split"),
        bill_payload(payment_mode="none"),
        bill_payload(payment_amount="200"),
        bill_payload(payments=[{"mode": "cash", "amount": "212.40"}]),
        bill_payload(payments=[{"mode": "card", "amount": "212.40", "timestamp": stamp}]),
        bill_payload(items=[]),
    ]
    for payload in cases:
        response = client.post(
            f"/billing/{seed.store_id}/bills", json=payload, headers=auth_headers()
        )
        assert response.status_code == 400, payload


def test_catalog_price_and_inclusive_tax(client, db, seed, auth_headers, bill_payload):
    store = db.get(Store, seed.store_id)
    store.tax_billing = "inclusive"
    db.commit()

    payload = bill_payload(
        items=[{"line_no": 1, "type": "product", "id": seed.shampoo_id, "cgst": "2.5", "sgst": "2.5"}],
        payment_mode="none",
        payment_amount="0",
        payments=[],
    )
    response = client.post(f"/billing/{seed.store_id}/bills", json=payload, headers=auth_headers())

    bill = response.json()["data"]
    assert bill["items"][0]["unit_price"] == 50
    assert bill["items"][0]["base_amount"] == 47.62
    assert bill["totals"]["grand_total"] == 50.0
    assert bill["status"] == "unpaid"


def test_unknown_catalog_item_is_not_found(client, db, seed, auth_headers, bill_payload):
    payload = bill_payload(
        items=[{"line_no": 1, "type": "service", "id": seed.foreign_service_id, "price": "10"}],
        payment_mode="none",
        payment_amount="0",
        payments=[],
    )
    response = client.post(f"/billing/{seed.store_id}/bills", json=payload, headers=auth_headers())

    assert response.status_code == 404
    assert db.query(Bill).count() == 0


def test_advance_payment_requires_balance(client, db, seed, auth_headers, bill_payload, now):
    payload = bill_payload(
        payment_mode="advance",
        payments=[{"mode": "advance", "amount": "212.40", "timestamp": now.isoformat()}],
    )
    response = client.post(f"/billing/{seed.store_id}/bills", json=payload, headers=auth_headers())

    assert response.status_code == 400
    assert response.json()["message"] == (
        "Advance payment failed: Insufficient advance balance. Available: 0.00, Required: 212.40"
    )
    assert db.query(Bill).count() == 0
    assert db.query(BillItem).count() == 0


def test_advance_payment_debits_balance(client, db, seed, auth_headers, bill_payload, now):
    customer = db.get(Customer, seed.customer_id)
    customer.advance_amount = Decimal("300")
    db.commit()

    payload = bill_payload(
        payment_mode="cash",
        payments=[{"mode": "advance", "amount": "212.40", "timestamp": now.isoformat()}],
    )
    response = client.post(f"/billing/{seed.store_id}/bills", json=payload, headers=auth_headers())

    assert response.status_code == 201
    assert response.json()["data"]["payments"][0]["reference"] == "Advance deduction"
    db.expire_all()
    assert db.get(Customer, seed.customer_id).advance_amount == Decimal("87.60")
    entry = db.query(CustomerWalletHistory).one()
    assert entry.transaction_type == "debit"
    assert entry.amount == Decimal("-212.40")


def test_overpayment_is_credited_to_advance(client, db, seed, auth_headers, bill_payload, now):
    payload = bill_payload(
        payment_amount="250",
        payments=[{"mode": "cash", "amount": "250", "timestamp": now.isoformat()}],
    )
    response = client.post(f"/billing/{seed.store_id}/bills", json=payload, headers=auth_headers())

    assert response.json()["data"]["status"] == "paid"
    db.expire_all()
    assert db.get(Customer, seed.customer_id).advance_amount == Decimal("37.60")


def test_coupon_is_applied_and_recorded(client, db, seed, auth_headers, bill_payload, add_coupon):
    add_coupon()
    payload = bill_payload(
        coupon_code="SAVE50",
        payment_mode="none",
        payment_amount="0",
        payments=[],
    )
    response = client.post(f"/billing/{seed.store_id}/bills", json=payload, headers=auth_headers())

    bill = response.json()["data"]
    assert response.status_code == 201
    assert bill["coupon_codes"] == ["SAVE50"]
    assert bill["totals"]["grand_total"] == 162.4
    usage = db.query(CouponUsage).one()
    assert usage.customer_id == seed.customer_id
    assert usage.discount_applied == Decimal("50.00")

    # usage_limit is 1 per customer within the window
    again = client.post(f"/billing/{seed.store_id}/bills", json=payload, headers=auth_headers())
    assert again.status_code == 400
    assert again.json()["message"] == "SAVE50: Coupon usage limit of 1 reached"


def test_unknown_coupon_fails_bill(client, db, seed, auth_headers, bill_payload):
    payload = bill_payload(coupon_codes=["NOPE"], payment_mode="none", payment_amount="0", payments=[])
    response = client.post(f"/billing/{seed.store_id}/bills", json=payload, headers=auth_headers())

    assert response.status_code == 400
    assert db.query(Bill).count() == 0


def test_get_bill_is_public(client, seed, auth_headers, bill_payload):
    created = client.post(
        f"/billing/{seed.store_id}/bills", json=bill_payload(), headers=auth_headers()
    ).json()["data"]

    response = client.get(f"/billing/{seed.store_id}/bills/{created['id']}")
    assert response.status_code == 200
    assert response.json()["data"]["invoice_number"] == created["invoice_number"]

    missing = client.get(f"/billing/{seed.store_id}/bills/does-not-exist")
    assert missing.status_code == 404
    assert missing.json() == {"success": False, "message": "Bill not found"}


def test_store_membership_is_required(client, seed, auth_headers, bill_payload):
    url = f"/billing/{seed.store_id}/bills"

    assert client.get(url).status_code == 401
    denied = client.post(url, json=bill_payload(), headers=auth_headers("outsider"))
    assert denied.status_code == 403
    assert denied.json()["message"] == "You do not have access to this store"


def test_list_bills_filters_and_pagination(client, seed, auth_headers, bill_payload, now):
    unpaid = bill_payload(payment_mode="none", payment_amount="0", payments=[])
    for _ in range(3):
        client.post(f"/billing/{seed.store_id}/bills", json=bill_payload(), headers=auth_headers())
    client.post(f"/billing/{seed.store_id}/bills", json=unpaid, headers=auth_headers())

    response = client.get(
        f"/billing/{seed.store_id}/bills",
        params={"limit": 2, "page": 1, "q": "Asha"},
        headers=auth_headers(),
    )
    data = response.json()["data"]
    assert data["pagination"] == {"page": 1, "limit": 2, "total": 4, "pages": 2}
    assert len(data["bills"]) == 2

    only_unpaid = client.get(
        f"/billing/{seed.store_id}/bills", params={"status": "unpaid"}, headers=auth_headers()
    ).json()["data"]
    assert only_unpaid["pagination"]["total"] == 1

    tomorrow = (now + timedelta(days=1)).date().isoformat()
    future = client.get(
        f"/billing/{seed.store_id}/bills", params={"from": tomorrow}, headers=auth_headers()
    ).json()["data"]
    assert future["bills"] == []


def test_customer_bills_summary(client, seed, auth_headers, bill_payload):
    unpaid = bill_payload(payment_mode="none", payment_amount="0", payments=[])
    client.post(f"/billing/{seed.store_id}/bills", json=bill_payload(), headers=auth_headers())
    client.post(f"/billing/{seed.store_id}/bills", json=unpaid, headers=auth_headers())

    response = client.get(
        f"/billing/{seed.store_id}/customers/{seed.customer_id}/bills",
        params={"due_only": "true"},
        headers=auth_headers(),
    )
    data = response.json()["data"]
    assert data["summary"] == {
        "total_bills": 2,
        "total_billed": 424.8,
        "total_paid": 212.4,
        "total_dues": 212.4,
        "bills_with_dues": 1,
    }
    assert len(data["bills"]) == 1
    assert data["customer"]["dues"] == 212.4


def test_cancel_bill(client, db, seed, auth_headers, bill_payload):
    unpaid = bill_payload(payment_mode="none", payment_amount="0", payments=[])
    bill = client.post(
        f"/billing/{seed.store_id}/bills", json=unpaid, headers=auth_headers()
    ).json()["data"]
    url = f"/billing/{seed.store_id}/bills/{bill['id']}"

    assert client.post(f"{url}/cancel", headers=auth_headers("staff")).status_code == 403

    response = client.post(f"{url}/cancel", headers=auth_headers("manager"))
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "cancelled"
    db.expire_all()
    assert db.get(Customer, seed.customer_id).dues == Decimal("0.00")

    payment = client.post(
        f"{url}/payments", json={"mode": "cash", "amount": "10"}, headers=auth_headers()
    )
    assert payment.status_code == 409
    assert client.post(f"{url}/cancel", headers=auth_headers("owner")).status_code == 409
