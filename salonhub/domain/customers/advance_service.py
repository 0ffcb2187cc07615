"""Customer advance service - find-or-create customers and move their advance balance"""

import logging
import secrets
import string
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ...errors import NotFoundError, ValidationError
from ...models import Customer, CustomerWalletHistory
from ..billing.calculator import ZERO, round_money, to_decimal
from .repository import CustomerRepository

logger = logging.getLogger(__name__)

REFERRAL_CODE_ALPHABET = string.digits + string.ascii_uppercase
REFERRAL_CODE_LENGTH = 8


class CustomerAdvanceService:
    """
    Wallet side effects shared by billing and bookings.

    Methods only stage changes in the caller's session; the caller owns the
    transaction and commits or rolls back.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = CustomerRepository()

    def generate_referral_code(self) -> str:
        while True:
            code = "".join(
                secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(REFERRAL_CODE_LENGTH)
            )
            if not self.repo.referral_code_exists(self.db, code):
                return code

    def get_customer(self, store_id: str, customer_id: str) -> Customer:
        customer = self.repo.get_customer(self.db, store_id, customer_id)
        if not customer:
            raise NotFoundError("Customer not found in this store")
        return customer

    def find_or_create_customer(
        self, store_id: str, phone_number: str, **details
    ) -> tuple[Customer, bool]:
        """Return ``(customer, is_new)`` for the phone number within the store"""
        if not phone_number:
            raise ValidationError("Phone number information is required")

        existing = self.repo.get_customer_by_phone(self.db, store_id, phone_number)
        if existing:
            return existing, False

        customer = self.repo.add_customer(
            self.db,
            store_id=store_id,
            phone_number=phone_number,
            name=details.get("name") or "",
            gender=details.get("gender"),
            email=details.get("email"),
            address=details.get("address") or "",
            birthday=details.get("birthday"),
            anniversary=details.get("anniversary"),
            referral_code=self.generate_referral_code(),
            loyalty_points=0,
            wallet_balance=ZERO,
            dues=ZERO,
            advance_amount=ZERO,
            status="active",
        )
        logger.info(f"✅ Created customer {customer.id} for store {store_id}")
        return customer, True

    def add_advance_payment(
        self,
        customer: Customer,
        amount,
        reference_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Optional[CustomerWalletHistory]:
        """Credit the advance balance; non-positive amounts are ignored"""
        amount = round_money(amount or 0)
        if amount <= ZERO:
            return None

        customer.advance_amount = round_money(to_decimal(customer.advance_amount) + amount)
        return self.repo.add_wallet_entry(
            self.db,
            customer_id=customer.id,
            amount=amount,
            transaction_type="credit",
            transaction_reference_id=reference_id,
            description=description,
        )

    def deduct_advance_payment(
        self,
        customer: Customer,
        amount,
        reference_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Optional[CustomerWalletHistory]:
        """Debit the advance balance, refusing to go below zero"""
        amount = round_money(amount or 0)
        if amount <= ZERO:
            return None

        balance = to_decimal(customer.advance_amount or 0)
        if balance < amount:
            raise ValidationError(
                f"Advance payment failed: Insufficient advance balance. "
                f"Available: {balance:.2f}, Required: {amount:.2f}"
            )

        customer.advance_amount = round_money(balance - amount)
        return self.repo.add_wallet_entry(
            self.db,
            customer_id=customer.id,
            amount=-amount,
            transaction_type="debit",
            transaction_reference_id=reference_id,
            description=description,
        )

    def adjust_advance_balance(
        self,
        customer: Customer,
        delta,
        reference_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Decimal:
        """
        Apply a signed correction (booking edits). Negative corrections may not
        take the balance below zero.
        """
        delta = round_money(delta or 0)
        if delta > ZERO:
            self.add_advance_payment(customer, delta, reference_id, description)
        elif delta < ZERO:
            self.deduct_advance_payment(customer, -delta, reference_id, description)
        return to_decimal(customer.advance_amount)

    def get_wallet_history(self, store_id: str, customer_id: str, limit: int, offset: int):
        self.get_customer(store_id, customer_id)
        return self.repo.get_wallet_history(self.db, customer_id, limit, offset)
