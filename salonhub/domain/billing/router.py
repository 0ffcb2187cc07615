"""Billing router - FastAPI endpoints for bills, payments and held bills"""

import logging
from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...permissions import ANY_ROLE, OWNER_OR_MANAGER, StoreContext, require_store_role
from ...shared.pagination import PageParams, page_params, pagination_meta
from ...shared.responses import iso, jsonable, money, success
from .schemas import BillCreate, BillPaymentCreate, HeldBillCreate
from .service import (
    BillingService,
    build_bill_response,
    build_bill_summary,
    build_held_bill_summary,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["Billing"])

BillSort = Literal["date_asc", "date_desc", "amount_asc", "amount_desc"]
BillStatus = Literal["unpaid", "partial", "paid", "cancelled"]


def get_billing_service(db: Session = Depends(get_db)) -> BillingService:
    """Dependency injection for BillingService"""
    return BillingService(db)


def idempotency_key_header(
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
) -> Optional[str]:
    """Optional Idempotency-Key header; a blank value counts as absent"""
    return (idempotency_key or "").strip() or None


# ============================================================================
# BILLS
# ============================================================================


@router.post("/{store_id}/bills", status_code=201)
async def create_bill(
    store_id: str,
    data: BillCreate,
    idempotency_key: Optional[str] = Depends(idempotency_key_header),
    ctx: StoreContext = Depends(require_store_role(*ANY_ROLE)),
    service: BillingService = Depends(get_billing_service),
):
    """Finalize a bill with its items, payments and coupons"""
    logger.info(f"📥 Saving bill for store {store_id} by user {ctx.user.id}")
    bill = service.save_bill(store_id, ctx.user.id, data, idempotency_key=idempotency_key)
    return success("Bill created successfully", build_bill_response(bill))


@router.get("/{store_id}/bills")
async def list_bills(
    store_id: str,
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
    q: Optional[str] = Query(None, max_length=100),
    sort: BillSort = Query("date_desc"),
    status: Optional[BillStatus] = Query(None),
    params: PageParams = Depends(page_params(20)),
    ctx: StoreContext = Depends(require_store_role(*ANY_ROLE)),
    service: BillingService = Depends(get_billing_service),
):
    """List bills of the store, newest first by default"""
    bills, total = service.list_bills(
        store_id,
        params.offset,
        params.limit,
        sort,
        from_date=from_date,
        to_date=to_date,
        q=q,
        status=status,
    )
    return success(
        "Bills retrieved successfully",
        {
            "bills": [build_bill_summary(b) for b in bills],
            "pagination": pagination_meta(params, total),
        },
    )


@router.get("/{store_id}/customers/{customer_id}/bills")
async def list_customer_bills(
    store_id: str,
    customer_id: str,
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
    sort: BillSort = Query("date_desc"),
    due_only: bool = Query(False),
    params: PageParams = Depends(page_params(20)),
    ctx: StoreContext = Depends(require_store_role(*ANY_ROLE)),
    service: BillingService = Depends(get_billing_service),
):
    """Bills of one customer with a lifetime summary"""
    customer, bills, total, summary = service.list_customer_bills(
        store_id,
        customer_id,
        params.offset,
        params.limit,
        sort,
        from_date=from_date,
        to_date=to_date,
        due_only=due_only,
    )
    return success(
        "Customer bills retrieved successfully",
        {
            "customer": {
                "id": customer.id,
                "name": customer.name,
                "phone_number": customer.phone_number,
                "dues": money(customer.dues),
                "advance_amount": money(customer.advance_amount),
            },
            "summary": summary,
            "bills": [build_bill_summary(b) for b in bills],
            "pagination": pagination_meta(params, total),
        },
    )


# ============================================================================
# HELD BILLS
# Declared before /bills/{bill_id} so "held" is not taken for a bill id
# ============================================================================


@router.post("/{store_id}/bills/hold", status_code=201)
async def hold_bill(
    store_id: str,
    data: HeldBillCreate,
    idempotency_key: Optional[str] = Depends(idempotency_key_header),
    ctx: StoreContext = Depends(require_store_role(*ANY_ROLE)),
    service: BillingService = Depends(get_billing_service),
):
    """Park a draft bill for later checkout"""
    held = service.hold_bill(
        store_id,
        ctx.user.id,
        data,
        jsonable(data.model_dump(exclude_unset=True)),
        idempotency_key=idempotency_key,
    )
    return success("Bill held successfully", {"held_id": held.id, "created_at": iso(held.created_at)})


@router.get("/{store_id}/bills/held")
async def list_held_bills(
    store_id: str,
    params: PageParams = Depends(page_params(50)),
    ctx: StoreContext = Depends(require_store_role(*ANY_ROLE)),
    service: BillingService = Depends(get_billing_service),
):
    held_bills, total = service.list_held_bills(store_id, params.offset, params.limit)
    return success(
        "Held bills retrieved successfully",
        {
            "held_bills": [build_held_bill_summary(h) for h in held_bills],
            "pagination": pagination_meta(params, total),
        },
    )


@router.get("/{store_id}/bills/held/{held_id}")
async def get_held_bill(
    store_id: str,
    held_id: str,
    ctx: StoreContext = Depends(require_store_role(*ANY_ROLE)),
    service: BillingService = Depends(get_billing_service),
):
    """Held payload plus an invoice number the client may show at checkout"""
    held = service.get_held_bill(store_id, held_id)
    data = build_held_bill_summary(held)
    data["payload"] = held.payload
    data["suggested_invoice_number"] = service.suggested_invoice_number()
    return success("Held bill retrieved successfully", data)


@router.delete("/{store_id}/bills/held/{held_id}")
async def delete_held_bill(
    store_id: str,
    held_id: str,
    ctx: StoreContext = Depends(require_store_role(*ANY_ROLE)),
    service: BillingService = Depends(get_billing_service),
):
    service.delete_held_bill(store_id, held_id)
    return success("Held bill deleted successfully")


# ============================================================================
# SINGLE BILL
# ============================================================================


@router.get("/{store_id}/bills/{bill_id}")
async def get_bill(
    store_id: str,
    bill_id: str,
    service: BillingService = Depends(get_billing_service),
):
    """Public bill view (shared as a receipt link); no authentication"""
    bill = service.get_bill_detail(store_id, bill_id)
    return success("Bill retrieved successfully", build_bill_response(bill))


@router.post("/{store_id}/bills/{bill_id}/payments")
async def add_bill_payment(
    store_id: str,
    bill_id: str,
    data: BillPaymentCreate,
    ctx: StoreContext = Depends(require_store_role(*ANY_ROLE)),
    service: BillingService = Depends(get_billing_service),
):
    """Record a payment against the outstanding dues of a bill"""
    bill = service.add_payment(store_id, bill_id, data)
    return success("Payment recorded successfully", build_bill_response(bill))


@router.post("/{store_id}/bills/{bill_id}/cancel")
async def cancel_bill(
    store_id: str,
    bill_id: str,
    ctx: StoreContext = Depends(require_store_role(*OWNER_OR_MANAGER)),
    service: BillingService = Depends(get_billing_service),
):
    bill = service.cancel_bill(store_id, bill_id)
    return success("Bill cancelled successfully", build_bill_response(bill))
