"""Booking service - appointment transactions and advance balance effects"""

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from ...errors import NotFoundError
from ...models import Customer
from ...models_booking import Booking, BookingItem
from ...shared.responses import iso, money
from ..billing.calculator import ZERO, round_money, to_decimal
from ..customers.advance_service import CustomerAdvanceService
from .repository import BookingRepository
from .schemas import BookingCreate

logger = logging.getLogger(__name__)


def build_booking_response(booking: Booking) -> dict:
    return {
        "id": booking.id,
        "store_id": booking.store_id,
        "customer_id": booking.customer_id,
        "country_code": booking.country_code,
        "contact_no": booking.contact_no,
        "customer_name": booking.customer_name,
        "gender": booking.gender,
        "email": booking.email,
        "address": booking.address,
        "booking_datetime": iso(booking.booking_datetime),
        "venue_type": booking.venue_type,
        "remarks": booking.remarks,
        "status": booking.status,
        "total_amount": money(booking.total_amount),
        "advance_amount": money(booking.advance_amount),
        "payable_amount": money(booking.payable_amount),
        "payment_mode": booking.payment_mode,
        "items": [
            {
                "id": item.id,
                "service_id": item.service_id,
                "service_name": item.service_name,
                "unit_price": money(item.unit_price),
                "staff_id": item.staff_id,
                "staff_name": item.staff_name,
                "quantity": item.quantity,
                "scheduled_at": iso(item.scheduled_at),
                "venue": item.venue,
            }
            for item in booking.items
        ],
        "created_by": booking.created_by,
        "updated_by": booking.updated_by,
        "created_at": iso(booking.created_at),
        "updated_at": iso(booking.updated_at),
    }


class BookingService:
    """Service layer for booking business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BookingRepository()
        self.advance = CustomerAdvanceService(db)

    def _resolve_customer(self, store_id: str, data: BookingCreate) -> Customer:
        if data.customer_id:
            return self.advance.get_customer(store_id, data.customer_id)
        customer, is_new = self.advance.find_or_create_customer(
            store_id,
            data.phone_number,
            name=data.customer_name,
            gender=data.gender,
            email=data.email,
            address=data.address,
        )
        if is_new:
            logger.info(f"👤 New customer {customer.id} created from booking")
        return customer

    def _build_items(self, store_id: str, data: BookingCreate) -> list[BookingItem]:
        missing = self.repo.missing_service_ids(
            self.db, store_id, [item.service_id for item in data.items]
        )
        if missing:
            raise NotFoundError(f"Service not found: {', '.join(missing)}")
        return [
            BookingItem(
                line_no=line_no,
                service_id=item.service_id,
                service_name=item.service_name,
                unit_price=round_money(item.unit_price),
                staff_id=item.staff_id,
                staff_name=item.staff_name,
                quantity=item.quantity,
                scheduled_at=item.scheduled_at,
                venue=item.venue,
            )
            for line_no, item in enumerate(data.items, start=1)
        ]

    @staticmethod
    def _amounts(data: BookingCreate) -> tuple:
        total = round_money(
            sum((to_decimal(i.unit_price) * i.quantity for i in data.items), ZERO)
        )
        advance = round_money(data.advance_amount)
        return total, advance, max(total - advance, ZERO)

    @staticmethod
    def _apply_header(booking: Booking, customer: Customer, data: BookingCreate, amounts) -> None:
        total, advance, payable = amounts
        booking.customer_id = customer.id
        booking.country_code = data.country_code
        booking.contact_no = data.contact_no
        booking.customer_name = data.customer_name
        booking.gender = data.gender
        booking.email = data.email
        booking.address = data.address
        booking.booking_datetime = data.booking_datetime
        booking.venue_type = data.venue_type
        booking.remarks = data.remarks
        booking.total_amount = total
        booking.advance_amount = advance
        booking.payable_amount = payable
        booking.payment_mode = data.payment_mode

    def create_booking(self, store_id: str, user_id: str, data: BookingCreate) -> Booking:
        try:
            customer = self._resolve_customer(store_id, data)
            items = self._build_items(store_id, data)
            amounts = self._amounts(data)

            booking = Booking(store_id=store_id, status="scheduled", created_by=user_id)
            self._apply_header(booking, customer, data, amounts)
            self.repo.add_booking(self.db, booking)
            self.repo.replace_items(self.db, booking, items)

            self.advance.add_advance_payment(
                customer,
                amounts[1],
                reference_id=booking.id,
                description=f"Advance for booking on {data.booking_datetime:%Y-%m-%d %H:%M}",
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"✅ Booking {booking.id} created for store {store_id}")
        return self.get_booking(store_id, booking.id)

    def update_booking(
        self, store_id: str, user_id: str, booking_id: str, data: BookingCreate
    ) -> Booking:
        """
        Rewrite a booking and move only the advance difference.

        Same customer: the change in advance is credited or debited.
        Different customer: the old advance leaves the old customer and the
        new advance is credited to the new one.
        """
        try:
            booking = self.repo.get_booking(self.db, store_id, booking_id, for_update=True)
            if not booking:
                raise NotFoundError("Booking not found")

            old_customer_id = booking.customer_id
            old_advance = round_money(booking.advance_amount)

            customer = self._resolve_customer(store_id, data)
            items = self._build_items(store_id, data)
            amounts = self._amounts(data)
            new_advance = amounts[1]

            self._apply_header(booking, customer, data, amounts)
            booking.updated_by = user_id
            self.repo.replace_items(self.db, booking, items)

            description = f"Advance adjusted for booking {booking.id}"
            if customer.id == old_customer_id:
                self.advance.adjust_advance_balance(
                    customer, new_advance - old_advance, booking.id, description
                )
            else:
                old_customer = self.advance.get_customer(store_id, old_customer_id)
                self.advance.adjust_advance_balance(
                    old_customer, -old_advance, booking.id, f"Booking {booking.id} moved to another customer"
                )
                self.advance.add_advance_payment(customer, new_advance, booking.id, description)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"✅ Booking {booking_id} updated")
        return self.get_booking(store_id, booking_id)

    def get_booking(self, store_id: str, booking_id: str) -> Booking:
        booking = self.repo.get_booking(self.db, store_id, booking_id)
        if not booking:
            raise NotFoundError("Booking not found")
        return booking

    def list_bookings(self, store_id: str, offset: int, limit: int, **filters):
        return self.repo.list_bookings(self.db, store_id, offset, limit, **filters)

    def update_status(self, store_id: str, user_id: str, booking_id: str, status: str) -> Booking:
        booking = self.get_booking(store_id, booking_id)
        previous = booking.status
        booking.status = status
        booking.updated_by = user_id
        self.db.commit()
        logger.info(f"🔄 Booking {booking_id} status {previous} -> {status}")
        return self.get_booking(store_id, booking_id)

    def delete_booking(self, store_id: str, user_id: str, booking_id: str) -> None:
        booking = self.get_booking(store_id, booking_id)
        booking.deleted_at = datetime.now(timezone.utc)
        booking.updated_by = user_id
        self.db.commit()
        logger.info(f"🗑️ Booking {booking_id} deleted")
