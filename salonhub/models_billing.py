"""
Bill, line item, payment and held-bill models
"""

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .models import generate_id

BILL_STATUSES = ("unpaid", "partial", "paid", "cancelled")


class Bill(Base):
    """Finalized bill; totals are computed once at write time"""

    __tablename__ = "bills"

    id = Column(String(36), primary_key=True, default=generate_id)
    store_id = Column(String(36), ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id = Column(
        String(36), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Not unique: two bills in the same millisecond are tolerated
    invoice_number = Column(String(50), nullable=False, index=True)
    coupon_code = Column(String(100), nullable=True)
    coupon_codes = Column(JSON, nullable=True)
    referral_code = Column(String(100), nullable=True)

    sub_total = Column(Numeric(10, 2), nullable=False, default=0)
    discount = Column(Numeric(10, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(10, 2), nullable=False, default=0)
    cgst_amount = Column(Numeric(10, 2), nullable=False, default=0)
    sgst_amount = Column(Numeric(10, 2), nullable=False, default=0)
    grand_total = Column(Numeric(10, 2), nullable=False, default=0)
    paid_amount = Column(Numeric(10, 2), nullable=False, default=0)
    dues = Column(Numeric(10, 2), nullable=False, default=0)

    status = Column(String(20), nullable=False, default="unpaid", index=True)
    payment_mode = Column(String(20), nullable=False)  # cash, card, upi, wallet, advance, split, none
    payment_amount = Column(Numeric(10, 2), nullable=False, default=0)
    billing_timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    payment_timestamp = Column(DateTime(timezone=True), nullable=True)

    # Unique index is the only duplicate-submission guard
    idempotency_key = Column(String(255), unique=True, nullable=True)
    created_by = Column(String(36), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer")
    store = relationship("Store")
    items = relationship(
        "BillItem", back_populates="bill", cascade="all, delete-orphan", order_by="BillItem.line_no"
    )
    payments = relationship(
        "BillPayment",
        back_populates="bill",
        cascade="all, delete-orphan",
        order_by="BillPayment.timestamp",
    )


class BillItem(Base):
    __tablename__ = "bill_items"
    __table_args__ = (UniqueConstraint("bill_id", "line_no", name="uq_bill_items_bill_line"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    bill_id = Column(String(36), ForeignKey("bills.id", ondelete="CASCADE"), nullable=False, index=True)
    line_no = Column(Integer, nullable=False)
    type = Column(String(20), nullable=False)  # service, product, membership
    catalog_id = Column(String(36), nullable=False)
    name = Column(String(255), nullable=False)
    staff_id = Column(String(36), ForeignKey("staff.id", ondelete="SET NULL"), nullable=True)
    qty = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(10, 2), nullable=False)
    discount_type = Column(String(20), nullable=False)  # percentage, flat
    discount_value = Column(Numeric(10, 2), nullable=False, default=0)
    cgst_rate = Column(Numeric(5, 2), nullable=False, default=0)
    sgst_rate = Column(Numeric(5, 2), nullable=False, default=0)
    base_amount = Column(Numeric(10, 2), nullable=False)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    taxable_amount = Column(Numeric(10, 2), nullable=False, default=0)
    cgst_amount = Column(Numeric(10, 2), nullable=False, default=0)
    sgst_amount = Column(Numeric(10, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(10, 2), nullable=False, default=0)
    line_total = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    bill = relationship("Bill", back_populates="items")


class BillPayment(Base):
    """Append-only payment event against a bill"""

    __tablename__ = "bill_payments"

    id = Column(String(36), primary_key=True, default=generate_id)
    bill_id = Column(String(36), ForeignKey("bills.id", ondelete="CASCADE"), nullable=False, index=True)
    mode = Column(String(20), nullable=False)  # cash, card, upi, wallet, advance
    amount = Column(Numeric(10, 2), nullable=False)
    reference = Column(String(255), nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    bill = relationship("Bill", back_populates="payments")


class HeldBill(Base):
    """Draft bill kept as its raw request payload"""

    __tablename__ = "held_bills"

    id = Column(String(36), primary_key=True, default=generate_id)
    store_id = Column(String(36), ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    payload = Column(JSON, nullable=False)
    customer_summary = Column(String(500), nullable=True)
    amount_estimate = Column(Numeric(10, 2), nullable=True)
    idempotency_key = Column(String(255), unique=True, nullable=True)
    created_by = Column(String(36), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
