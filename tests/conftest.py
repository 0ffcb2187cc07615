import os

# Configure before the application modules read their settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["REDIS_URL"] = ""
os.environ["DB_LOG_SLOW_QUERIES"] = "false"

from datetime import datetime, timedelta, timezone  # noqa: E402
from decimal import Decimal  # noqa: E402
from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from salonhub.auth import create_access_token  # noqa: E402
from salonhub.database import Base, SessionLocal, engine  # noqa: E402
from salonhub.main import app  # noqa: E402
from salonhub.models import (  # noqa: E402
    Customer,
    Membership,
    Product,
    Service,
    Store,
    StoreUser,
    User,
)
from salonhub.models_coupon import Coupon  # noqa: E402
from salonhub.token_blacklist import clear_blacklist  # noqa: E402


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    clear_blacklist()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def seed(db):
    """One store with a member per role, a small catalog and a customer"""
    store = Store(name="Glow Studio", city="Pune", tax_billing="exclusive")
    other_store = Store(name="Other Salon", tax_billing="exclusive")
    db.add_all([store, other_store])
    db.flush()

    users = {}
    for role in ("owner", "manager", "staff", "outsider"):
        user = User(full_name=f"{role.title()} User", email=f"{role}@example.com", status="active")
        db.add(user)
        db.flush()
        users[role] = user
        if role != "outsider":
            db.add(StoreUser(store_id=store.id, user_id=user.id, role=role))
    db.add(StoreUser(store_id=other_store.id, user_id=users["outsider"].id, role="owner"))

    haircut = Service(store_id=store.id, name="Haircut", price=Decimal("100.00"))
    shampoo = Product(store_id=store.id, name="Shampoo", price=Decimal("50.00"))
    gold = Membership(store_id=store.id, name="Gold", price=Decimal("1000.00"))
    facial = Service(store_id=store.id, name="Facial", price=Decimal("500.00"))
    foreign_service = Service(store_id=other_store.id, name="Massage", price=Decimal("300.00"))
    db.add_all([haircut, shampoo, gold, facial, foreign_service])

    customer = Customer(
        store_id=store.id,
        phone_number="+919876543210",
        name="Asha",
        referral_code="ASHA0001",
        dues=Decimal("0"),
        advance_amount=Decimal("0"),
        wallet_balance=Decimal("0"),
    )
    db.add(customer)
    db.commit()

    return SimpleNamespace(
        store_id=store.id,
        other_store_id=other_store.id,
        users={role: u.id for role, u in users.items()},
        haircut_id=haircut.id,
        facial_id=facial.id,
        shampoo_id=shampoo.id,
        gold_id=gold.id,
        foreign_service_id=foreign_service.id,
        customer_id=customer.id,
    )


@pytest.fixture
def auth_headers(seed):
    def _headers(role: str = "staff") -> dict:
        token = create_access_token(seed.users[role])
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


@pytest.fixture
def bill_payload(seed, now):
    """Build a bill request; the default is one paid haircut line worth 212.40"""

    def _payload(**overrides) -> dict:
        stamp = now.isoformat()
        payload = {
            "customer_id": seed.customer_id,
            "items": [
                {
                    "line_no": 1,
                    "type": "service",
                    "id": seed.haircut_id,
                    "qty": 2,
                    "price": "100",
                    "discount_type": "percent",
                    "discount_value": "10",
                    "cgst": "9",
                    "sgst": "9",
                }
            ],
            "payment_mode": "cash",
            "payment_amount": "212.40",
            "payments": [{"mode": "cash", "amount": "212.40", "timestamp": stamp}],
            "billing_timestamp": stamp,
        }
        payload.update(overrides)
        return payload

    return _payload


@pytest.fixture
def add_coupon(db, seed, now):
    """Insert a coupon valid around today; flat 50 off, one use per customer"""

    def _add(**overrides) -> Coupon:
        today = now.date()
        data = dict(
            store_id=seed.store_id,
            coupon_code="SAVE50",
            valid_from=today - timedelta(days=1),
            valid_till=today + timedelta(days=30),
            discount_type="flat",
            discount_value=Decimal("50"),
            minimum_spend=Decimal("0"),
            usage_limit=1,
            limit_refresh_days=30,
            services_all_included=True,
            products_all_included=True,
            memberships_all_included=True,
            status="active",
        )
        data.update(overrides)
        coupon = Coupon(**data)
        db.add(coupon)
        db.commit()
        return coupon

    return _add
