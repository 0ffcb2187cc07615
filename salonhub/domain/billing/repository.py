"""Billing repository - Database operations for bills and held bills"""

from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session, joinedload, selectinload

from ...models import CATALOG_MODELS, Customer, Store
from ...models_billing import Bill, BillItem, BillPayment, HeldBill

BILL_SORTS = {
    "date_asc": (Bill.billing_timestamp.asc(),),
    "date_desc": (Bill.billing_timestamp.desc(),),
    "amount_asc": (Bill.grand_total.asc(), Bill.billing_timestamp.desc()),
    "amount_desc": (Bill.grand_total.desc(), Bill.billing_timestamp.desc()),
}


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min)


def _next_day_start(value: date) -> datetime:
    return datetime.combine(value + timedelta(days=1), time.min)


class BillingRepository:
    """Repository for billing database operations"""

    @staticmethod
    def get_store(db: Session, store_id: str) -> Optional[Store]:
        return db.query(Store).filter(Store.id == store_id).first()

    @staticmethod
    def get_catalog_item(db: Session, store_id: str, item_type: str, catalog_id: str):
        model = CATALOG_MODELS[item_type]
        return (
            db.query(model).filter(model.id == catalog_id, model.store_id == store_id).first()
        )

    @staticmethod
    def add_bill(db: Session, bill: Bill) -> Bill:
        """Stage the header and flush so the idempotency index is checked now"""
        db.add(bill)
        db.flush()
        return bill

    @staticmethod
    def add_item(db: Session, **item_data) -> BillItem:
        item = BillItem(**item_data)
        db.add(item)
        db.flush()
        return item

    @staticmethod
    def add_payment(db: Session, **payment_data) -> BillPayment:
        payment = BillPayment(**payment_data)
        db.add(payment)
        db.flush()
        return payment

    @staticmethod
    def get_bill(db: Session, store_id: str, bill_id: str, for_update: bool = False) -> Optional[Bill]:
        query = db.query(Bill).filter(Bill.id == bill_id, Bill.store_id == store_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def get_bill_detail(db: Session, store_id: str, bill_id: str) -> Optional[Bill]:
        return (
            db.query(Bill)
            .options(
                joinedload(Bill.customer),
                joinedload(Bill.store),
                selectinload(Bill.items),
                selectinload(Bill.payments),
            )
            .filter(Bill.id == bill_id, Bill.store_id == store_id)
            .first()
        )

    @staticmethod
    def _filtered_bills(
        db: Session,
        store_id: str,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        q: Optional[str] = None,
        status: Optional[str] = None,
        customer_id: Optional[str] = None,
        due_only: bool = False,
    ):
        query = db.query(Bill).join(Customer, Bill.customer_id == Customer.id).filter(
            Bill.store_id == store_id
        )
        if customer_id:
            query = query.filter(Bill.customer_id == customer_id)
        if from_date:
            query = query.filter(Bill.billing_timestamp >= _day_start(from_date))
        if to_date:
            query = query.filter(Bill.billing_timestamp < _next_day_start(to_date))
        if status:
            query = query.filter(Bill.status == status)
        if due_only:
            query = query.filter(Bill.dues > 0)
        if q:
            pattern = f"%{q.strip()}%"
            query = query.filter(
                or_(
                    Customer.name.ilike(pattern),
                    Customer.phone_number.ilike(pattern),
                    Bill.invoice_number.ilike(pattern),
                )
            )
        return query

    @staticmethod
    def list_bills(
        db: Session,
        store_id: str,
        offset: int,
        limit: int,
        sort: str = "date_desc",
        **filters,
    ) -> tuple[list[Bill], int]:
        query = BillingRepository._filtered_bills(db, store_id, **filters)
        total = query.count()
        rows = (
            query.options(joinedload(Bill.customer))
            .order_by(*BILL_SORTS.get(sort, BILL_SORTS["date_desc"]))
            .offset(offset)
            .limit(limit)
            .all()
        )
        return rows, total

    @staticmethod
    def customer_bill_summary(db: Session, store_id: str, customer_id: str) -> dict:
        row = (
            db.query(
                func.count(Bill.id),
                func.coalesce(func.sum(Bill.grand_total), 0),
                func.coalesce(func.sum(Bill.paid_amount), 0),
                func.coalesce(func.sum(Bill.dues), 0),
                func.coalesce(func.sum(case((Bill.dues > 0, 1), else_=0)), 0),
            )
            .filter(
                Bill.store_id == store_id,
                Bill.customer_id == customer_id,
                Bill.status != "cancelled",
            )
            .one()
        )
        return {
            "total_bills": int(row[0] or 0),
            "total_billed": float(row[1] or 0),
            "total_paid": float(row[2] or 0),
            "total_dues": float(row[3] or 0),
            "bills_with_dues": int(row[4] or 0),
        }

    # ------------------------------------------------------------------
    # Held bills
    # ------------------------------------------------------------------

    @staticmethod
    def add_held_bill(db: Session, **held_data) -> HeldBill:
        held = HeldBill(**held_data)
        db.add(held)
        db.flush()
        return held

    @staticmethod
    def list_held_bills(
        db: Session, store_id: str, offset: int, limit: int
    ) -> tuple[list[HeldBill], int]:
        query = db.query(HeldBill).filter(HeldBill.store_id == store_id)
        total = query.count()
        rows = query.order_by(HeldBill.created_at.desc()).offset(offset).limit(limit).all()
        return rows, total

    @staticmethod
    def get_held_bill(db: Session, store_id: str, held_id: str) -> Optional[HeldBill]:
        return (
            db.query(HeldBill)
            .filter(HeldBill.id == held_id, HeldBill.store_id == store_id)
            .first()
        )

    @staticmethod
    def delete_held_bill(db: Session, held: HeldBill) -> None:
        db.delete(held)
        db.commit()
