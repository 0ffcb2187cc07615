"""
Coupon models with per-category inclusion allow-lists and usage history
"""

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .models import generate_id

COUPON_STATUSES = ("active", "inactive", "expired")


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (UniqueConstraint("store_id", "coupon_code", name="uq_coupons_store_code"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    store_id = Column(String(36), ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    coupon_code = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=True)
    valid_from = Column(Date, nullable=False)
    valid_till = Column(Date, nullable=False)
    discount_type = Column(String(20), nullable=False)  # flat, percentage
    discount_value = Column(Numeric(10, 2), nullable=False)
    minimum_spend = Column(Numeric(10, 2), default=0)
    maximum_discount = Column(Numeric(10, 2), nullable=True)
    usage_limit = Column(Integer, nullable=False, default=1)  # per customer within the refresh window
    limit_refresh_days = Column(Integer, default=30)
    services_all_included = Column(Boolean, default=False)
    products_all_included = Column(Boolean, default=False)
    memberships_all_included = Column(Boolean, default=False)
    status = Column(String(20), default="active", index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    service_inclusions = relationship(
        "CouponServiceInclusion", cascade="all, delete-orphan", passive_deletes=True
    )
    product_inclusions = relationship(
        "CouponProductInclusion", cascade="all, delete-orphan", passive_deletes=True
    )
    membership_inclusions = relationship(
        "CouponMembershipInclusion", cascade="all, delete-orphan", passive_deletes=True
    )
    usages = relationship("CouponUsage", cascade="all, delete-orphan", passive_deletes=True)

    @property
    def service_ids(self) -> list[str]:
        return [i.service_id for i in self.service_inclusions]

    @property
    def product_ids(self) -> list[str]:
        return [i.product_id for i in self.product_inclusions]

    @property
    def membership_ids(self) -> list[str]:
        return [i.membership_id for i in self.membership_inclusions]


class CouponServiceInclusion(Base):
    __tablename__ = "coupon_service_inclusions"
    __table_args__ = (UniqueConstraint("coupon_id", "service_id"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    coupon_id = Column(String(36), ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False, index=True)
    service_id = Column(String(36), ForeignKey("services.id", ondelete="CASCADE"), nullable=False)


class CouponProductInclusion(Base):
    __tablename__ = "coupon_product_inclusions"
    __table_args__ = (UniqueConstraint("coupon_id", "product_id"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    coupon_id = Column(String(36), ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False)


class CouponMembershipInclusion(Base):
    __tablename__ = "coupon_membership_inclusions"
    __table_args__ = (UniqueConstraint("coupon_id", "membership_id"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    coupon_id = Column(String(36), ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False, index=True)
    membership_id = Column(
        String(36), ForeignKey("memberships.id", ondelete="CASCADE"), nullable=False
    )


class CouponUsage(Base):
    """One row per redemption; drives the rolling per-customer usage limit"""

    __tablename__ = "coupon_usage"

    id = Column(String(36), primary_key=True, default=generate_id)
    coupon_id = Column(String(36), ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id = Column(
        String(36), ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True
    )
    bill_id = Column(String(36), ForeignKey("bills.id", ondelete="SET NULL"), nullable=True)
    usage_date = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    order_amount = Column(Numeric(10, 2), nullable=True)
    discount_applied = Column(Numeric(10, 2), nullable=True)
