"""Booking router - FastAPI endpoints for store appointments"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...permissions import ANY_ROLE, StoreContext, require_store_role
from ...shared.pagination import PageParams, page_params, pagination_meta
from ...shared.responses import success
from .schemas import BookingCreate, BookingStatus, BookingStatusUpdate
from .service import BookingService, build_booking_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/store/{store_id}/bookings", tags=["Bookings"])


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db)


@router.post("", status_code=201)
async def create_booking(
    store_id: str,
    data: BookingCreate,
    ctx: StoreContext = Depends(require_store_role(*ANY_ROLE)),
    service: BookingService = Depends(get_booking_service),
):
    logger.info(f"📥 Creating booking for store {store_id}")
    booking = service.create_booking(store_id, ctx.user.id, data)
    return success("Booking created successfully", build_booking_response(booking))


@router.get("")
async def list_bookings(
    store_id: str,
    status: Optional[BookingStatus] = Query(None),
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
    search: Optional[str] = Query(None, max_length=100),
    params: PageParams = Depends(page_params(20)),
    ctx: StoreContext = Depends(require_store_role(*ANY_ROLE)),
    service: BookingService = Depends(get_booking_service),
):
    bookings, total = service.list_bookings(
        store_id,
        params.offset,
        params.limit,
        status=status,
        from_date=from_date,
        to_date=to_date,
        search=search,
    )
    return success(
        "Bookings retrieved successfully",
        {
            "bookings": [build_booking_response(b) for b in bookings],
            "pagination": pagination_meta(params, total),
        },
    )


@router.get("/{booking_id}")
async def get_booking(
    store_id: str,
    booking_id: str,
    ctx: StoreContext = Depends(require_store_role(*ANY_ROLE)),
    service: BookingService = Depends(get_booking_service),
):
    booking = service.get_booking(store_id, booking_id)
    return success("Booking retrieved successfully", build_booking_response(booking))


@router.put("/{booking_id}")
async def update_booking(
    store_id: str,
    booking_id: str,
    data: BookingCreate,
    ctx: StoreContext = Depends(require_store_role(*ANY_ROLE)),
    service: BookingService = Depends(get_booking_service),
):
    """Replace the booking header and lines"""
    booking = service.update_booking(store_id, ctx.user.id, booking_id, data)
    return success("Booking updated successfully", build_booking_response(booking))


@router.patch("/{booking_id}/status")
async def update_booking_status(
    store_id: str,
    booking_id: str,
    data: BookingStatusUpdate,
    ctx: StoreContext = Depends(require_store_role(*ANY_ROLE)),
    service: BookingService = Depends(get_booking_service),
):
    booking = service.update_status(store_id, ctx.user.id, booking_id, data.status)
    return success("Booking status updated successfully", build_booking_response(booking))


@router.delete("/{booking_id}")
async def delete_booking(
    store_id: str,
    booking_id: str,
    ctx: StoreContext = Depends(require_store_role(*ANY_ROLE)),
    service: BookingService = Depends(get_booking_service),
):
    service.delete_booking(store_id, ctx.user.id, booking_id)
    return success("Booking deleted successfully")
