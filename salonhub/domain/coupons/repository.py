"""Coupon repository - Database operations for coupons, inclusions and usage"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, selectinload

from ...models import Membership, Product, Service
from ...models_coupon import (
    Coupon,
    CouponMembershipInclusion,
    CouponProductInclusion,
    CouponServiceInclusion,
    CouponUsage,
)

COUPON_SORT_COLUMNS = {
    "couponCode": Coupon.coupon_code,
    "validFrom": Coupon.valid_from,
    "validTill": Coupon.valid_till,
    "discountValue": Coupon.discount_value,
    "created_at": Coupon.created_at,
}

# category -> (catalog model, inclusion model, inclusion column name)
INCLUSION_TABLES = {
    "services": (Service, CouponServiceInclusion, "service_id"),
    "products": (Product, CouponProductInclusion, "product_id"),
    "memberships": (Membership, CouponMembershipInclusion, "membership_id"),
}


def _with_inclusions(query):
    return query.options(
        selectinload(Coupon.service_inclusions),
        selectinload(Coupon.product_inclusions),
        selectinload(Coupon.membership_inclusions),
    )


class CouponRepository:
    """Repository for coupon database operations"""

    @staticmethod
    def get_coupon(db: Session, store_id: str, coupon_id: str) -> Optional[Coupon]:
        return (
            _with_inclusions(db.query(Coupon))
            .filter(Coupon.id == coupon_id, Coupon.store_id == store_id)
            .first()
        )

    @staticmethod
    def get_coupon_by_code(db: Session, store_id: str, code: str) -> Optional[Coupon]:
        return (
            _with_inclusions(db.query(Coupon))
            .filter(Coupon.store_id == store_id, Coupon.coupon_code == code)
            .first()
        )

    @staticmethod
    def code_exists(db: Session, store_id: str, code: str, exclude_id: Optional[str] = None) -> bool:
        query = db.query(Coupon.id).filter(Coupon.store_id == store_id, Coupon.coupon_code == code)
        if exclude_id:
            query = query.filter(Coupon.id != exclude_id)
        return query.first() is not None

    @staticmethod
    def list_coupons(
        db: Session,
        store_id: str,
        offset: int,
        limit: int,
        search: Optional[str] = None,
        status: Optional[str] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> tuple[list[Coupon], int]:
        query = db.query(Coupon).filter(Coupon.store_id == store_id)
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(Coupon.coupon_code.ilike(pattern), Coupon.description.ilike(pattern))
            )
        if status:
            query = query.filter(Coupon.status == status)

        total = query.count()
        column = COUPON_SORT_COLUMNS.get(sort_by, Coupon.created_at)
        ordering = column.asc() if sort_order.lower() == "asc" else column.desc()
        rows = _with_inclusions(query).order_by(ordering).offset(offset).limit(limit).all()
        return rows, total

    @staticmethod
    def list_active_coupons(db: Session, store_id: str, as_of) -> list[Coupon]:
        return (
            _with_inclusions(db.query(Coupon))
            .filter(
                Coupon.store_id == store_id,
                Coupon.status == "active",
                Coupon.valid_from <= as_of,
                Coupon.valid_till >= as_of,
            )
            .order_by(Coupon.created_at.desc())
            .all()
        )

    @staticmethod
    def unknown_catalog_ids(db: Session, store_id: str, category: str, ids: list[str]) -> list[str]:
        """Ids from ``ids`` that are not in the store's catalog for the category"""
        if not ids:
            return []
        model = INCLUSION_TABLES[category][0]
        found = {
            row[0]
            for row in db.query(model.id).filter(model.store_id == store_id, model.id.in_(ids)).all()
        }
        return [i for i in ids if i not in found]

    @staticmethod
    def replace_inclusions(db: Session, coupon: Coupon, category: str, ids: list[str]) -> None:
        _, inclusion_model, column = INCLUSION_TABLES[category]
        collection = getattr(coupon, f"{category[:-1]}_inclusions")
        wanted = list(dict.fromkeys(ids))
        # Keep surviving rows so the (coupon, item) unique index never sees a re-insert
        for inclusion in list(collection):
            if getattr(inclusion, column) not in wanted:
                collection.remove(inclusion)
        present = {getattr(inclusion, column) for inclusion in collection}
        for catalog_id in wanted:
            if catalog_id not in present:
                collection.append(inclusion_model(**{column: catalog_id}))

    @staticmethod
    def delete_coupon(db: Session, coupon: Coupon) -> None:
        db.delete(coupon)
        db.commit()

    @staticmethod
    def count_usage(
        db: Session, coupon_id: str, customer_id: Optional[str] = None, since: Optional[datetime] = None
    ) -> int:
        query = db.query(func.count(CouponUsage.id)).filter(CouponUsage.coupon_id == coupon_id)
        if customer_id:
            query = query.filter(CouponUsage.customer_id == customer_id)
        if since is not None:
            query = query.filter(CouponUsage.usage_date >= since)
        return query.scalar() or 0

    @staticmethod
    def add_usage(db: Session, **usage_data) -> CouponUsage:
        usage = CouponUsage(**usage_data)
        db.add(usage)
        db.flush()
        return usage
