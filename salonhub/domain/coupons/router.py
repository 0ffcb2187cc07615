"""Coupon router - FastAPI endpoints for coupon management and validation"""

import logging
from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...permissions import ANY_ROLE, OWNER_ONLY, OWNER_OR_MANAGER, StoreContext, require_store_role
from ...shared.pagination import PageParams, page_params, pagination_meta
from ...shared.responses import success
from .schemas import CouponCreate, CouponUpdate, CouponValidateRequest
from .service import CouponService, build_coupon_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/coupons", tags=["Coupons"])


def get_coupon_service(db: Session = Depends(get_db)) -> CouponService:
    """Dependency injection for CouponService"""
    return CouponService(db)


def _id_list(values: list[str]) -> list[str]:
    """Repeated or comma-separated query values as a flat list of ids"""
    return [v.strip() for value in values for v in value.split(",") if v.strip()]


# ============================================================================
# LISTING AND LOOKUP
# ============================================================================


@router.get("/{store_id}")
async def list_coupons(
    store_id: str,
    search: Optional[str] = Query(None, max_length=100),
    status: Optional[Literal["active", "inactive", "expired"]] = Query(None),
    sort_by: Literal["couponCode", "validFrom", "validTill", "discountValue", "created_at"] = Query(
        "created_at", alias="sortBy"
    ),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
    params: PageParams = Depends(page_params(10)),
    ctx: StoreContext = Depends(require_store_role(*ANY_ROLE)),
    service: CouponService = Depends(get_coupon_service),
):
    coupons, total = service.list_coupons(
        store_id,
        params.offset,
        params.limit,
        search=search,
        status=status,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return success(
        "Coupons retrieved successfully",
        {"coupons": coupons, "pagination": pagination_meta(params, total)},
    )


@router.post("/{store_id}/validate")
async def validate_coupon(
    store_id: str,
    data: CouponValidateRequest,
    ctx: StoreContext = Depends(require_store_role(*ANY_ROLE)),
    service: CouponService = Depends(get_coupon_service),
):
    """Check a code against an order and preview the discount"""
    result = service.validate_coupon(store_id, data)
    return success("Coupon is valid", result)


@router.get("/{store_id}/eligible")
async def eligible_coupons(
    store_id: str,
    customer_id: Optional[str] = Query(None, alias="customerId"),
    phone_number: Optional[str] = Query(None, alias="phoneNumber"),
    order_amount: Optional[float] = Query(None, ge=0, alias="orderAmount"),
    as_of: Optional[date] = Query(None, alias="date"),
    service_ids: list[str] = Query([], alias="serviceIds"),
    product_ids: list[str] = Query([], alias="productIds"),
    membership_ids: list[str] = Query([], alias="membershipIds"),
    ctx: StoreContext = Depends(require_store_role(*ANY_ROLE)),
    service: CouponService = Depends(get_coupon_service),
):
    """Active coupons a customer could apply right now"""
    coupons = service.eligible_coupons(
        store_id,
        customer_id=customer_id,
        phone_number=phone_number,
        order_amount=order_amount,
        as_of=as_of,
        service_ids=_id_list(service_ids),
        product_ids=_id_list(product_ids),
        membership_ids=_id_list(membership_ids),
    )
    return success("Eligible coupons retrieved successfully", {"coupons": coupons})


@router.get("/{store_id}/{coupon_id}")
async def get_coupon(
    store_id: str,
    coupon_id: str,
    ctx: StoreContext = Depends(require_store_role(*ANY_ROLE)),
    service: CouponService = Depends(get_coupon_service),
):
    return success("Coupon retrieved successfully", service.get_coupon_detail(store_id, coupon_id))


# ============================================================================
# MANAGEMENT
# ============================================================================


@router.post("/{store_id}", status_code=201)
async def create_coupon(
    store_id: str,
    data: CouponCreate,
    ctx: StoreContext = Depends(require_store_role(*OWNER_OR_MANAGER)),
    service: CouponService = Depends(get_coupon_service),
):
    coupon = service.create_coupon(store_id, data)
    return success("Coupon created successfully", build_coupon_response(coupon))


@router.put("/{store_id}/{coupon_id}")
async def update_coupon(
    store_id: str,
    coupon_id: str,
    data: CouponUpdate,
    ctx: StoreContext = Depends(require_store_role(*OWNER_OR_MANAGER)),
    service: CouponService = Depends(get_coupon_service),
):
    coupon = service.update_coupon(store_id, coupon_id, data)
    return success("Coupon updated successfully", build_coupon_response(coupon))


@router.delete("/{store_id}/{coupon_id}")
async def delete_coupon(
    store_id: str,
    coupon_id: str,
    ctx: StoreContext = Depends(require_store_role(*OWNER_ONLY)),
    service: CouponService = Depends(get_coupon_service),
):
    service.delete_coupon(store_id, coupon_id)
    return success("Coupon deleted successfully")
