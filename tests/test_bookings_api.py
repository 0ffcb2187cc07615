from datetime import timedelta
from decimal import Decimal

from salonhub.models import Customer, CustomerWalletHistory
from salonhub.models_booking import Booking, BookingItem


def booking_body(seed, now, **overrides):
    start = (now + timedelta(days=2)).replace(microsecond=0)
    body = {
        "country_code": "+91",
        "contact_no": "9876543210",
        "customer_name": "Asha",
        "gender": "female",
        "booking_datetime": start.isoformat(),
        "venue_type": "indoor",
        "advance_amount": "100",
        "payment_mode": "cash",
        "items": [
            {
                "service_id": seed.haircut_id,
                "service_name": "Haircut",
                "unit_price": "100",
                "quantity": 2,
                "scheduled_at": start.isoformat(),
                "vanue": "Chair 3",
            },
            {
                "service_id": seed.facial_id,
                "unit_price": "500",
                "scheduled_at": (start + timedelta(hours=1)).isoformat(),
            },
        ],
    }
    body.update(overrides)
    return body


def advance_of(db, customer_id) -> Decimal:
    db.expire_all()
    return db.get(Customer, customer_id).advance_amount


def test_create_booking_credits_advance(client, db, seed, auth_headers, now):
    response = client.post(
        f"/store/{seed.store_id}/bookings", json=booking_body(seed, now), headers=auth_headers()
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["customer_id"] == seed.customer_id
    assert data["status"] == "scheduled"
    assert (data["total_amount"], data["advance_amount"], data["payable_amount"]) == (700, 100, 600)
    assert data["items"][0]["venue"] == "Chair 3"
    assert advance_of(db, seed.customer_id) == Decimal("100.00")
    entry = db.query(CustomerWalletHistory).one()
    assert entry.transaction_reference_id == data["id"]


def test_new_contact_creates_customer(client, db, seed, auth_headers, now):
    body = booking_body(seed, now, contact_no="9000000002", customer_name="Kiran", advance_amount="0")
    response = client.post(f"/store/{seed.store_id}/bookings", json=body, headers=auth_headers())

    customer = db.query(Customer).filter(Customer.phone_number == "+919000000002").one()
    assert response.json()["data"]["customer_id"] == customer.id
    assert db.query(CustomerWalletHistory).count() == 0


def test_booking_validation(client, seed, auth_headers, now):
    url = f"/store/{seed.store_id}/bookings"
    cases = [
        booking_body(seed, now, contact_no="12345"),
        booking_body(seed, now, country_code="91"),
        booking_body(seed, now, gender="unknown"),
        booking_body(seed, now, venue_type="rooftop"),
        booking_body(seed, now, payment_mode="upi"),
        booking_body(seed, now, items=[]),
    ]
    for body in cases:
        assert client.post(url, json=body, headers=auth_headers()).status_code == 400


def test_update_applies_advance_delta(client, db, seed, auth_headers, now):
    url = f"/store/{seed.store_id}/bookings"
    booking_id = client.post(url, json=booking_body(seed, now), headers=auth_headers()).json()["data"]["id"]

    body = booking_body(seed, now, advance_amount="250")
    body["items"] = body["items"][:1]
    response = client.put(f"{url}/{booking_id}", json=body, headers=auth_headers())

    data = response.json()["data"]
    assert response.status_code == 200
    assert len(data["items"]) == 1
    assert (data["total_amount"], data["payable_amount"]) == (200, 0)
    assert advance_of(db, seed.customer_id) == Decimal("250.00")
    assert db.query(BookingItem).count() == 1

    lowered = booking_body(seed, now, advance_amount="40")
    client.put(f"{url}/{booking_id}", json=lowered, headers=auth_headers())
    assert advance_of(db, seed.customer_id) == Decimal("40.00")


def test_update_moves_advance_between_customers(client, db, seed, auth_headers, now):
    url = f"/store/{seed.store_id}/bookings"
    booking_id = client.post(url, json=booking_body(seed, now), headers=auth_headers()).json()["data"]["id"]

    body = booking_body(seed, now, contact_no="9000000003", customer_name="Dev", advance_amount="150")
    data = client.put(f"{url}/{booking_id}", json=body, headers=auth_headers()).json()["data"]

    assert data["customer_id"] != seed.customer_id
    assert advance_of(db, seed.customer_id) == Decimal("0.00")
    assert advance_of(db, data["customer_id"]) == Decimal("150.00")


def test_update_cannot_take_spent_advance_back(client, db, seed, auth_headers, now):
    url = f"/store/{seed.store_id}/bookings"
    booking_id = client.post(url, json=booking_body(seed, now), headers=auth_headers()).json()["data"]["id"]
    customer = db.get(Customer, seed.customer_id)
    customer.advance_amount = Decimal("30")
    db.commit()

    response = client.put(
        f"{url}/{booking_id}", json=booking_body(seed, now, advance_amount="0"), headers=auth_headers()
    )

    assert response.status_code == 400
    assert response.json()["message"].startswith("Advance payment failed")
    assert db.get(Booking, booking_id).advance_amount == Decimal("100.00")


def test_status_list_and_soft_delete(client, db, seed, auth_headers, now):
    url = f"/store/{seed.store_id}/bookings"
    first = client.post(url, json=booking_body(seed, now), headers=auth_headers()).json()["data"]
    client.post(url, json=booking_body(seed, now, contact_no="9000000004"), headers=auth_headers())

    patched = client.patch(
        f"{url}/{first['id']}/status", json={"status": "completed"}, headers=auth_headers()
    )
    assert patched.json()["data"]["status"] == "completed"
    # Any status may follow any other
    back = client.patch(
        f"{url}/{first['id']}/status", json={"status": "scheduled"}, headers=auth_headers()
    )
    assert back.status_code == 200
    bad = client.patch(f"{url}/{first['id']}/status", json={"status": "done"}, headers=auth_headers())
    assert bad.status_code == 400

    listed = client.get(url, params={"search": "98765"}, headers=auth_headers()).json()["data"]
    assert listed["pagination"]["total"] == 1

    assert client.delete(f"{url}/{first['id']}", headers=auth_headers()).status_code == 200
    assert client.get(f"{url}/{first['id']}", headers=auth_headers()).status_code == 404
    assert client.get(url, headers=auth_headers()).json()["data"]["pagination"]["total"] == 1
    assert db.get(Booking, first["id"]).deleted_at is not None


def test_unknown_service_is_rejected(client, db, seed, auth_headers, now):
    body = booking_body(seed, now)
    body["items"][0]["service_id"] = seed.foreign_service_id

    response = client.post(f"/store/{seed.store_id}/bookings", json=body, headers=auth_headers())

    assert response.status_code == 404
    assert db.query(Booking).count() == 0
    assert advance_of(db, seed.customer_id) == Decimal("0.00")
