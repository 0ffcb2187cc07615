"""Customer router - advance balance and wallet ledger endpoints"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database import get_db
from ...permissions import ANY_ROLE, StoreContext, require_store_role
from ...shared.pagination import PageParams, page_params, pagination_meta
from ...shared.responses import iso, money, success
from .advance_service import CustomerAdvanceService

router = APIRouter(prefix="/customers", tags=["Customers"])


def get_advance_service(db: Session = Depends(get_db)) -> CustomerAdvanceService:
    """Dependency injection for CustomerAdvanceService"""
    return CustomerAdvanceService(db)


@router.get("/{store_id}/{customer_id}/advance")
async def get_advance_balance(
    store_id: str,
    customer_id: str,
    ctx: StoreContext = Depends(require_store_role(*ANY_ROLE)),
    service: CustomerAdvanceService = Depends(get_advance_service),
):
    customer = service.get_customer(store_id, customer_id)
    return success(
        "Advance balance retrieved successfully",
        {
            "customer_id": customer.id,
            "name": customer.name,
            "phone_number": customer.phone_number,
            "advance_amount": money(customer.advance_amount),
            "dues": money(customer.dues),
            "wallet_balance": money(customer.wallet_balance),
        },
    )


@router.get("/{store_id}/{customer_id}/wallet-history")
async def get_wallet_history(
    store_id: str,
    customer_id: str,
    params: PageParams = Depends(page_params(20)),
    ctx: StoreContext = Depends(require_store_role(*ANY_ROLE)),
    service: CustomerAdvanceService = Depends(get_advance_service),
):
    """Advance ledger, newest entry first"""
    entries, total = service.get_wallet_history(store_id, customer_id, params.limit, params.offset)
    return success(
        "Wallet history retrieved successfully",
        {
            "history": [
                {
                    "id": e.id,
                    "amount": money(e.amount),
                    "transaction_type": e.transaction_type,
                    "transaction_reference_id": e.transaction_reference_id,
                    "description": e.description,
                    "created_at": iso(e.created_at),
                }
                for e in entries
            ],
            "pagination": pagination_meta(params, total),
        },
    )
