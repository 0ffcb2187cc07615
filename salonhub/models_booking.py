"""
Booking models: appointment header plus replaceable service lines
"""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .models import generate_id

BOOKING_STATUSES = ("scheduled", "in-progress", "completed", "cancelled")


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=generate_id)
    store_id = Column(String(36), ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=False, index=True)
    country_code = Column(String(5), nullable=False)
    contact_no = Column(String(15), nullable=False)
    customer_name = Column(String(255), nullable=False)
    gender = Column(String(10), nullable=True)
    email = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)
    booking_datetime = Column(DateTime(timezone=True), nullable=False, index=True)
    venue_type = Column(String(20), nullable=False)  # indoor, outdoor
    remarks = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="scheduled", index=True)
    total_amount = Column(Numeric(10, 2), nullable=False, default=0)
    advance_amount = Column(Numeric(10, 2), nullable=False, default=0)
    payable_amount = Column(Numeric(10, 2), nullable=False, default=0)
    payment_mode = Column(String(20), nullable=True)  # cash, card, online
    created_by = Column(String(36), ForeignKey("users.id"), nullable=False)
    updated_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship(
        "BookingItem",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingItem.line_no",
    )


class BookingItem(Base):
    __tablename__ = "booking_items"

    id = Column(String(36), primary_key=True, default=generate_id)
    booking_id = Column(
        String(36), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    line_no = Column(Integer, nullable=False, default=1)
    service_id = Column(String(36), ForeignKey("services.id"), nullable=False)
    service_name = Column(String(255), nullable=True)
    unit_price = Column(Numeric(10, 2), nullable=False)
    staff_id = Column(String(36), ForeignKey("staff.id"), nullable=True)
    staff_name = Column(String(255), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    scheduled_at = Column(DateTime(timezone=True), nullable=False)
    venue = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    booking = relationship("Booking", back_populates="items")
