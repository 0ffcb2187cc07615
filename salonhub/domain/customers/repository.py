"""Customer repository - Database operations for customers and their wallet ledger"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Customer, CustomerWalletHistory


class CustomerRepository:
    """Repository for customer database operations"""

    @staticmethod
    def get_customer(db: Session, store_id: str, customer_id: str) -> Optional[Customer]:
        return (
            db.query(Customer)
            .filter(Customer.id == customer_id, Customer.store_id == store_id)
            .first()
        )

    @staticmethod
    def get_customer_by_phone(db: Session, store_id: str, phone_number: str) -> Optional[Customer]:
        return (
            db.query(Customer)
            .filter(Customer.store_id == store_id, Customer.phone_number == phone_number)
            .first()
        )

    @staticmethod
    def referral_code_exists(db: Session, code: str) -> bool:
        return db.query(Customer.id).filter(Customer.referral_code == code).first() is not None

    @staticmethod
    def add_customer(db: Session, **customer_data) -> Customer:
        """Stage a new customer in the current transaction"""
        customer = Customer(**customer_data)
        db.add(customer)
        db.flush()
        return customer

    @staticmethod
    def add_wallet_entry(db: Session, **entry_data) -> CustomerWalletHistory:
        entry = CustomerWalletHistory(**entry_data)
        db.add(entry)
        db.flush()
        return entry

    @staticmethod
    def get_wallet_history(
        db: Session, customer_id: str, limit: int, offset: int
    ) -> tuple[list[CustomerWalletHistory], int]:
        query = db.query(CustomerWalletHistory).filter(
            CustomerWalletHistory.customer_id == customer_id
        )
        total = query.count()
        rows = (
            query.order_by(CustomerWalletHistory.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return rows, total
