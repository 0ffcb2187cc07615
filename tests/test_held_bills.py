from datetime import datetime, timedelta, timezone
from decimal import Decimal

from salonhub.models import Customer
from salonhub.models_billing import HeldBill


def hold_payload(seed, **overrides):
    payload = {
        "customer_id": seed.customer_id,
        "items": [{"line_no": 1, "type": "service", "id": seed.haircut_id, "qty": 2, "price": "100"}],
        "discount": "10",
    }
    payload.update(overrides)
    return payload


def test_hold_bill_stores_payload_and_estimate(client, db, seed, auth_headers):
    response = client.post(
        f"/billing/{seed.store_id}/bills/hold", json=hold_payload(seed), headers=auth_headers()
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert set(data) == {"held_id", "created_at"}

    held = db.get(HeldBill, data["held_id"])
    assert held.amount_estimate == Decimal("190.00")
    assert held.customer_summary == "Asha (+919876543210)"
    assert held.payload["items"][0]["price"] == 100.0
    assert held.created_by == seed.users["staff"]


def test_inline_customer_summary_and_no_customer_created(client, db, seed, auth_headers):
    payload = hold_payload(
        seed, customer_id=None, customer_details={"name": "Meera", "contact_no": "+919123456789"}
    )
    response = client.post(
        f"/billing/{seed.store_id}/bills/hold", json=payload, headers=auth_headers()
    )

    held = db.get(HeldBill, response.json()["data"]["held_id"])
    assert held.customer_summary == "Meera (+919123456789)"
    assert db.query(Customer).filter(Customer.phone_number == "+919123456789").count() == 0


def test_failed_estimate_still_holds(client, db, seed, auth_headers):
    payload = hold_payload(
        seed, items=[{"line_no": 1, "type": "service", "id": "missing-service", "price": "10"}]
    )
    response = client.post(
        f"/billing/{seed.store_id}/bills/hold", json=payload, headers=auth_headers()
    )

    assert response.status_code == 201
    held = db.get(HeldBill, response.json()["data"]["held_id"])
    assert held.amount_estimate == Decimal("0")


def test_hold_requires_exactly_one_customer(client, seed, auth_headers):
    response = client.post(
        f"/billing/{seed.store_id}/bills/hold",
        json=hold_payload(seed, customer_id=None),
        headers=auth_headers(),
    )
    assert response.status_code == 400


def test_hold_idempotency_conflict(client, db, seed, auth_headers):
    headers = {**auth_headers(), "Idempotency-Key": "hold-1"}
    url = f"/billing/{seed.store_id}/bills/hold"

    assert client.post(url, json=hold_payload(seed), headers=headers).status_code == 201
    second = client.post(url, json=hold_payload(seed), headers=headers)

    assert second.status_code == 409
    assert second.json()["message"] == "Held bill already exists with this idempotency key"
    assert db.query(HeldBill).count() == 1


def test_blank_idempotency_key_holds_again(client, db, seed, auth_headers):
    headers = {**auth_headers(), "Idempotency-Key": ""}
    url = f"/billing/{seed.store_id}/bills/hold"

    assert client.post(url, json=hold_payload(seed), headers=headers).status_code == 201
    assert client.post(url, json=hold_payload(seed), headers=headers).status_code == 201
    assert db.query(HeldBill).count() == 2


def test_list_held_bills_newest_first(client, db, seed, auth_headers):
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    for offset in range(3):
        db.add(
            HeldBill(
                store_id=seed.store_id,
                payload={"n": offset},
                customer_summary=f"Customer {offset}",
                amount_estimate=Decimal(offset),
                created_by=seed.users["staff"],
                created_at=base + timedelta(minutes=offset),
            )
        )
    db.commit()

    response = client.get(
        f"/billing/{seed.store_id}/bills/held", params={"limit": 2}, headers=auth_headers()
    )
    data = response.json()["data"]

    assert [h["customer_summary"] for h in data["held_bills"]] == ["Customer 2", "Customer 1"]
    assert data["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}


def test_get_and_delete_held_bill(client, seed, auth_headers):
    held_id = client.post(
        f"/billing/{seed.store_id}/bills/hold", json=hold_payload(seed), headers=auth_headers()
    ).json()["data"]["held_id"]
    url = f"/billing/{seed.store_id}/bills/held/{held_id}"

    detail = client.get(url, headers=auth_headers()).json()["data"]
    assert detail["payload"]["customer_id"] == seed.customer_id
    assert detail["suggested_invoice_number"].startswith("INV")

    assert client.delete(url, headers=auth_headers()).status_code == 200
    assert client.get(url, headers=auth_headers()).status_code == 404


def test_held_bill_of_other_store_is_hidden(client, seed, auth_headers):
    held_id = client.post(
        f"/billing/{seed.store_id}/bills/hold", json=hold_payload(seed), headers=auth_headers()
    ).json()["data"]["held_id"]

    response = client.get(
        f"/billing/{seed.other_store_id}/bills/held/{held_id}", headers=auth_headers("outsider")
    )
    assert response.status_code == 404
