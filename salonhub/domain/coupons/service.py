"""Coupon service - Business logic for coupon management and eligibility"""

import logging
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...errors import ConflictError, NotFoundError, ValidationError
from ...models_coupon import Coupon
from ..billing.calculator import round_money
from ..customers.repository import CustomerRepository
from .repository import CouponRepository
from .resolver import CouponEligibility, evaluate_coupon, usage_window_start
from .schemas import CouponCreate, CouponUpdate, CouponValidateRequest

logger = logging.getLogger(__name__)

DUPLICATE_CODE_MESSAGE = "Coupon code already exists for this store"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_coupon_response(coupon: Coupon, usage: Optional[int] = None) -> dict:
    """Coupon as returned by the API"""

    def inclusion(all_included: bool, ids: list[str]) -> dict:
        return {"allIncluded": bool(all_included), "inclusions": None if all_included else ids}

    data = {
        "id": coupon.id,
        "couponCode": coupon.coupon_code,
        "description": coupon.description,
        "validFrom": coupon.valid_from.isoformat() if coupon.valid_from else None,
        "validTill": coupon.valid_till.isoformat() if coupon.valid_till else None,
        "discount": {"type": coupon.discount_type, "value": float(coupon.discount_value)},
        "conditions": {
            "minimumSpend": float(coupon.minimum_spend or 0),
            "maximumDisc": float(coupon.maximum_discount)
            if coupon.maximum_discount is not None
            else None,
            "limit": coupon.usage_limit,
            "limitRefereshDays": coupon.limit_refresh_days,
        },
        "includedServices": inclusion(coupon.services_all_included, coupon.service_ids),
        "includedProducts": inclusion(coupon.products_all_included, coupon.product_ids),
        "includedMemberships": inclusion(coupon.memberships_all_included, coupon.membership_ids),
        "status": coupon.status,
        "created_at": coupon.created_at.isoformat() if coupon.created_at else None,
        "updated_at": coupon.updated_at.isoformat() if coupon.updated_at else None,
    }
    if usage is not None:
        data["usage"] = usage
    return data


class CouponService:
    """Service layer for coupon business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = CouponRepository()
        self.customers = CustomerRepository()

    # ------------------------------------------------------------------
    # Eligibility
    # ------------------------------------------------------------------

    def usage_count(
        self, coupon: Coupon, customer_id: Optional[str], now: Optional[datetime] = None
    ) -> Optional[int]:
        """Redemptions by the customer inside the refresh window, None when unknown"""
        if not customer_id:
            return None
        since = usage_window_start(now or _utcnow(), coupon.limit_refresh_days)
        return self.repo.count_usage(self.db, coupon.id, customer_id, since)

    def resolve(
        self,
        coupon: Coupon,
        order_amount,
        service_ids=(),
        product_ids=(),
        membership_ids=(),
        customer_id: Optional[str] = None,
        as_of: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> CouponEligibility:
        now = now or _utcnow()
        return evaluate_coupon(
            coupon,
            order_amount,
            service_ids=service_ids,
            product_ids=product_ids,
            membership_ids=membership_ids,
            usage_count=self.usage_count(coupon, customer_id, now),
            as_of=as_of or now.date(),
        )

    def validate_coupon(
        self, store_id: str, data: CouponValidateRequest, now: Optional[datetime] = None
    ) -> dict:
        coupon = self.repo.get_coupon_by_code(self.db, store_id, data.couponCode.strip())
        if not coupon:
            raise ValidationError("Invalid or expired coupon code")

        result = self.resolve(
            coupon,
            data.orderAmount,
            data.serviceIds,
            data.productIds,
            data.membershipIds,
            customer_id=data.customerId,
            now=now,
        )
        if not result.eligible:
            logger.info(f"Coupon {coupon.coupon_code} rejected for store {store_id}: {result.reason}")
            raise ValidationError(result.reason)

        return {
            "coupon": {
                "id": coupon.id,
                "couponCode": coupon.coupon_code,
                "discountType": coupon.discount_type,
                "discountValue": float(coupon.discount_value),
            },
            "discount": {
                "amount": float(result.discount_amount),
                "finalAmount": float(result.final_amount),
            },
        }

    def eligible_coupons(
        self,
        store_id: str,
        customer_id: Optional[str] = None,
        phone_number: Optional[str] = None,
        order_amount=None,
        as_of: Optional[date] = None,
        service_ids=(),
        product_ids=(),
        membership_ids=(),
        now: Optional[datetime] = None,
    ) -> list[dict]:
        """Active coupons that pass every check for the context, with a discount preview"""
        now = now or _utcnow()
        as_of = as_of or now.date()

        if not customer_id and phone_number:
            customer = self.customers.get_customer_by_phone(self.db, store_id, phone_number.strip())
            customer_id = customer.id if customer else None

        eligible = []
        for coupon in self.repo.list_active_coupons(self.db, store_id, as_of):
            # Without an order amount the minimum spend cannot fail
            amount = order_amount if order_amount is not None else coupon.minimum_spend or 0
            result = evaluate_coupon(
                coupon,
                round_money(amount),
                service_ids=service_ids,
                product_ids=product_ids,
                membership_ids=membership_ids,
                usage_count=self.usage_count(coupon, customer_id, now),
                as_of=as_of,
            )
            if not result.eligible:
                continue

            data = build_coupon_response(coupon)
            if order_amount is not None:
                data["computed"] = {
                    "amount": float(result.discount_amount),
                    "finalAmount": float(result.final_amount),
                }
            eligible.append(data)
        return eligible

    # ------------------------------------------------------------------
    # Management
    # ------------------------------------------------------------------

    def list_coupons(self, store_id: str, offset: int, limit: int, **filters):
        coupons, total = self.repo.list_coupons(self.db, store_id, offset, limit, **filters)
        return [build_coupon_response(c) for c in coupons], total

    def get_coupon(self, store_id: str, coupon_id: str) -> Coupon:
        coupon = self.repo.get_coupon(self.db, store_id, coupon_id)
        if not coupon:
            raise NotFoundError("Coupon not found")
        return coupon

    def get_coupon_detail(self, store_id: str, coupon_id: str) -> dict:
        coupon = self.get_coupon(store_id, coupon_id)
        return build_coupon_response(coupon, usage=self.repo.count_usage(self.db, coupon.id))

    def _check_inclusions(self, store_id: str, data) -> None:
        for category, field in (
            ("services", "includedServices"),
            ("products", "includedProducts"),
            ("memberships", "includedMemberships"),
        ):
            block = getattr(data, field)
            if block is None or block.allIncluded:
                continue
            unknown = self.repo.unknown_catalog_ids(self.db, store_id, category, block.inclusions)
            if unknown:
                raise ValidationError(
                    f"Some {category} do not belong to this store: {', '.join(unknown)}"
                )

    def _apply_inclusions(self, coupon: Coupon, data) -> None:
        for category, field in (
            ("services", "includedServices"),
            ("products", "includedProducts"),
            ("memberships", "includedMemberships"),
        ):
            block = getattr(data, field)
            if block is None:
                continue
            setattr(coupon, f"{category}_all_included", block.allIncluded)
            ids = [] if block.allIncluded else block.inclusions
            self.repo.replace_inclusions(self.db, coupon, category, ids)

    def _commit_or_conflict(self, coupon: Coupon) -> Coupon:
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning(f"⚠️ Duplicate coupon code {coupon.coupon_code}")
            raise ConflictError(DUPLICATE_CODE_MESSAGE)
        self.db.refresh(coupon)
        return coupon

    def create_coupon(self, store_id: str, data: CouponCreate) -> Coupon:
        logger.info(f"📥 Creating coupon {data.couponCode} for store {store_id}")
        if self.repo.code_exists(self.db, store_id, data.couponCode):
            raise ConflictError(DUPLICATE_CODE_MESSAGE)
        self._check_inclusions(store_id, data)

        coupon = Coupon(
            store_id=store_id,
            coupon_code=data.couponCode,
            description=data.description,
            valid_from=data.validFrom,
            valid_till=data.validTill,
            discount_type=data.discount.type,
            discount_value=data.discount.value,
            minimum_spend=data.conditions.minimumSpend,
            maximum_discount=data.conditions.maximumDisc,
            usage_limit=data.conditions.limit,
            limit_refresh_days=data.conditions.limitRefereshDays,
            status=data.status,
        )
        self._apply_inclusions(coupon, data)
        self.db.add(coupon)
        coupon = self._commit_or_conflict(coupon)
        logger.info(f"✅ Coupon {coupon.id} created")
        return coupon

    def update_coupon(self, store_id: str, coupon_id: str, data: CouponUpdate) -> Coupon:
        coupon = self.get_coupon(store_id, coupon_id)

        if data.couponCode and data.couponCode != coupon.coupon_code:
            if self.repo.code_exists(self.db, store_id, data.couponCode, exclude_id=coupon.id):
                raise ConflictError(DUPLICATE_CODE_MESSAGE)
            coupon.coupon_code = data.couponCode

        valid_from = data.validFrom or coupon.valid_from
        valid_till = data.validTill or coupon.valid_till
        if valid_till < valid_from:
            raise ValidationError("validTill must not be before validFrom")
        coupon.valid_from = valid_from
        coupon.valid_till = valid_till

        if data.description is not None:
            coupon.description = data.description
        if data.discount is not None:
            coupon.discount_type = data.discount.type
            coupon.discount_value = data.discount.value
        if data.conditions is not None:
            if data.conditions.minimumSpend is not None:
                coupon.minimum_spend = data.conditions.minimumSpend
            # An explicit null removes the cap
            if "maximumDisc" in data.conditions.model_fields_set:
                coupon.maximum_discount = data.conditions.maximumDisc
            if data.conditions.limit is not None:
                coupon.usage_limit = data.conditions.limit
            if data.conditions.limitRefereshDays is not None:
                coupon.limit_refresh_days = data.conditions.limitRefereshDays
        if data.status is not None:
            coupon.status = data.status

        self._check_inclusions(store_id, data)
        self._apply_inclusions(coupon, data)
        coupon = self._commit_or_conflict(coupon)
        logger.info(f"✅ Coupon {coupon.id} updated")
        return coupon

    def delete_coupon(self, store_id: str, coupon_id: str) -> None:
        coupon = self.get_coupon(store_id, coupon_id)
        self.repo.delete_coupon(self.db, coupon)
        logger.info(f"🗑️ Coupon {coupon_id} deleted from store {store_id}")

    # ------------------------------------------------------------------
    # Redemption (called inside the bill transaction)
    # ------------------------------------------------------------------

    def record_usage(
        self,
        coupon: Coupon,
        customer_id: Optional[str],
        bill_id: Optional[str],
        order_amount,
        discount_applied,
        used_at: Optional[datetime] = None,
    ):
        return self.repo.add_usage(
            self.db,
            coupon_id=coupon.id,
            customer_id=customer_id,
            bill_id=bill_id,
            usage_date=used_at or _utcnow(),
            order_amount=order_amount,
            discount_applied=discount_applied,
        )
