"""Booking repository - Database operations for bookings"""

from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from ...models import Service
from ...models_booking import Booking, BookingItem


class BookingRepository:
    """Repository for booking database operations"""

    @staticmethod
    def get_booking(db: Session, store_id: str, booking_id: str, for_update: bool = False) -> Optional[Booking]:
        """Live (not soft-deleted) booking of the store"""
        query = db.query(Booking).filter(
            Booking.id == booking_id,
            Booking.store_id == store_id,
            Booking.deleted_at.is_(None),
        )
        if for_update:
            query = query.with_for_update()
        else:
            query = query.options(selectinload(Booking.items))
        return query.first()

    @staticmethod
    def list_bookings(
        db: Session,
        store_id: str,
        offset: int,
        limit: int,
        status: Optional[str] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        search: Optional[str] = None,
    ) -> tuple[list[Booking], int]:
        query = db.query(Booking).filter(
            Booking.store_id == store_id, Booking.deleted_at.is_(None)
        )
        if status:
            query = query.filter(Booking.status == status)
        if from_date:
            query = query.filter(Booking.booking_datetime >= datetime.combine(from_date, time.min))
        if to_date:
            query = query.filter(
                Booking.booking_datetime < datetime.combine(to_date + timedelta(days=1), time.min)
            )
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(
                or_(Booking.customer_name.ilike(pattern), Booking.contact_no.ilike(pattern))
            )

        total = query.count()
        rows = (
            query.options(selectinload(Booking.items))
            .order_by(Booking.booking_datetime.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return rows, total

    @staticmethod
    def missing_service_ids(db: Session, store_id: str, service_ids: list[str]) -> list[str]:
        wanted = list(dict.fromkeys(service_ids))
        found = {
            row[0]
            for row in db.query(Service.id)
            .filter(Service.store_id == store_id, Service.id.in_(wanted))
            .all()
        }
        return [s for s in wanted if s not in found]

    @staticmethod
    def add_booking(db: Session, booking: Booking) -> Booking:
        db.add(booking)
        db.flush()
        return booking

    @staticmethod
    def replace_items(db: Session, booking: Booking, items: list[BookingItem]) -> None:
        """Delete the current lines then insert the new ones"""
        db.query(BookingItem).filter(BookingItem.booking_id == booking.id).delete(
            synchronize_session=False
        )
        db.expire(booking, ["items"])
        for item in items:
            item.booking_id = booking.id
            db.add(item)
        db.flush()
