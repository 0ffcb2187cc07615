"""Billing service - Bill assembly, persistence and held-bill staging"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...errors import ConflictError, NotFoundError, ValidationError
from ...models import Customer, Store
from ...models_billing import Bill, HeldBill
from ...models_coupon import Coupon
from ...shared.responses import iso, money
from ..coupons.repository import CouponRepository
from ..coupons.service import CouponService
from ..customers.advance_service import CustomerAdvanceService
from .calculator import (
    ZERO,
    LineAmounts,
    compute_bill_totals,
    compute_line,
    generate_invoice_number,
    normalize_discount_type,
    payment_status,
    round_money,
    to_decimal,
)
from .repository import BillingRepository
from .schemas import BillCreate, BillDraft, BillItemIn, BillPaymentCreate, HeldBillCreate
from .status import ensure_transition

logger = logging.getLogger(__name__)

BILL_CONFLICT_MESSAGE = "Bill already exists with this idempotency key"
HELD_CONFLICT_MESSAGE = "Held bill already exists with this idempotency key"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_bill_summary(bill: Bill) -> dict:
    """Row shape used by bill lists"""
    customer = bill.customer
    return {
        "id": bill.id,
        "invoice_number": bill.invoice_number,
        "customer_id": bill.customer_id,
        "customer_name": customer.name if customer else None,
        "customer_phone": customer.phone_number if customer else None,
        "grand_total": money(bill.grand_total),
        "paid_amount": money(bill.paid_amount),
        "dues": money(bill.dues),
        "status": bill.status,
        "payment_mode": bill.payment_mode,
        "billing_timestamp": iso(bill.billing_timestamp),
        "created_at": iso(bill.created_at),
    }


def build_bill_response(bill: Bill) -> dict:
    """Full bill detail: store, customer, lines, payments and totals"""
    store, customer = bill.store, bill.customer
    return {
        "id": bill.id,
        "invoice_number": bill.invoice_number,
        "status": bill.status,
        "store": {
            "id": store.id,
            "name": store.name,
            "address_line_1": store.address_line_1,
            "address_line_2": store.address_line_2,
            "city": store.city,
            "state": store.state,
            "zip_code": store.zip_code,
            "phone_number": store.phone_number,
            "email": store.email,
            "gstin": store.gstin,
            "logo_url": store.logo_url,
            "tax_billing": store.tax_billing,
        },
        "customer": {
            "id": customer.id,
            "name": customer.name,
            "phone_number": customer.phone_number,
            "email": customer.email,
            "dues": money(customer.dues),
            "advance_amount": money(customer.advance_amount),
        },
        "items": [
            {
                "line_no": item.line_no,
                "type": item.type,
                "id": item.catalog_id,
                "name": item.name,
                "staff_id": item.staff_id,
                "qty": item.qty,
                "unit_price": money(item.unit_price),
                "discount_type": item.discount_type,
                "discount_value": money(item.discount_value),
                "cgst_rate": money(item.cgst_rate),
                "sgst_rate": money(item.sgst_rate),
                "base_amount": money(item.base_amount),
                "discount_amount": money(item.discount_amount),
                "taxable_amount": money(item.taxable_amount),
                "cgst_amount": money(item.cgst_amount),
                "sgst_amount": money(item.sgst_amount),
                "tax_amount": money(item.tax_amount),
                "line_total": money(item.line_total),
            }
            for item in bill.items
        ],
        "payments": [
            {
                "id": p.id,
                "mode": p.mode,
                "amount": money(p.amount),
                "reference": p.reference,
                "timestamp": iso(p.timestamp),
            }
            for p in bill.payments
        ],
        "totals": {
            "sub_total": money(bill.sub_total),
            "discount": money(bill.discount),
            "cgst": money(bill.cgst_amount),
            "sgst": money(bill.sgst_amount),
            "tax": money(bill.tax_amount),
            "grand_total": money(bill.grand_total),
            "paid": money(bill.paid_amount),
            "dues": money(bill.dues),
        },
        "coupon_code": bill.coupon_code,
        "coupon_codes": bill.coupon_codes or [],
        "referral_code": bill.referral_code,
        "payment_mode": bill.payment_mode,
        "payment_amount": money(bill.payment_amount),
        "billing_timestamp": iso(bill.billing_timestamp),
        "payment_timestamp": iso(bill.payment_timestamp),
        "created_by": bill.created_by,
        "created_at": iso(bill.created_at),
    }


def build_held_bill_summary(held: HeldBill) -> dict:
    return {
        "id": held.id,
        "customer_summary": held.customer_summary,
        "amount_estimate": money(held.amount_estimate),
        "created_by": held.created_by,
        "created_at": iso(held.created_at),
    }


@dataclass
class PricedLine:
    item: BillItemIn
    name: str
    unit_price: Decimal
    amounts: LineAmounts


@dataclass
class AppliedCoupon:
    coupon: Coupon
    order_amount: Decimal
    discount: Decimal


class BillingService:
    """Service layer for billing business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BillingRepository()
        self.coupon_repo = CouponRepository()
        self.coupons = CouponService(db)
        self.advance = CustomerAdvanceService(db)

    # ------------------------------------------------------------------
    # Shared pricing steps
    # ------------------------------------------------------------------

    def get_store(self, store_id: str) -> Store:
        store = self.repo.get_store(self.db, store_id)
        if not store:
            raise NotFoundError("Store not found")
        return store

    def resolve_customer(self, store_id: str, payload: BillDraft) -> Customer:
        """Existing customer by id, or find-or-create from the inline details"""
        if payload.customer_id:
            return self.advance.get_customer(store_id, payload.customer_id)

        details = payload.inline_customer
        customer, _ = self.advance.find_or_create_customer(
            store_id,
            details.contact_no,
            name=details.name,
            gender=details.gender,
            email=details.email,
            address=details.address,
            birthday=details.birthday,
            anniversary=details.anniversary,
        )
        return customer

    def price_items(self, store: Store, items: list[BillItemIn]) -> list[PricedLine]:
        """
        Run every item through the calculator.
        Explicit prices are tax-exclusive; catalog prices follow the store's tax mode.
        """
        inclusive_store = (store.tax_billing or "exclusive") == "inclusive"
        priced = []
        for item in sorted(items, key=lambda i: i.line_no):
            catalog_item = self.repo.get_catalog_item(self.db, store.id, item.type, item.id)
            if not catalog_item:
                raise NotFoundError(f"{item.type} not found: {item.id}")

            if item.price is not None:
                unit_price, tax_inclusive = item.price, False
            else:
                unit_price, tax_inclusive = to_decimal(catalog_item.price), inclusive_store

            amounts = compute_line(
                unit_price,
                item.qty,
                item.discount_type,
                item.discount_value,
                item.cgst,
                item.sgst,
                tax_inclusive=tax_inclusive,
            )
            priced.append(PricedLine(item, catalog_item.name, round_money(unit_price), amounts))
        return priced

    def apply_coupons(
        self,
        store_id: str,
        codes: list[str],
        lines: list[PricedLine],
        order_amount: Decimal,
        customer_id: Optional[str],
        now: datetime,
        as_of=None,
    ) -> list[AppliedCoupon]:
        """
        Resolve each code in turn against the amount left after the previous
        ones. Any ineligible code fails the whole bill.
        """
        ids = {"service": [], "product": [], "membership": []}
        for line in lines:
            ids[line.item.type].append(line.item.id)

        applied = []
        remaining = order_amount
        for code in codes:
            coupon = self.coupon_repo.get_coupon_by_code(self.db, store_id, code)
            if not coupon:
                raise ValidationError(f"Invalid or expired coupon code: {code}")

            result = self.coupons.resolve(
                coupon,
                remaining,
                ids["service"],
                ids["product"],
                ids["membership"],
                customer_id=customer_id,
                as_of=as_of,
                now=now,
            )
            if not result.eligible:
                raise ValidationError(f"{code}: {result.reason}")

            applied.append(AppliedCoupon(coupon, remaining, result.discount_amount))
            remaining = result.final_amount
        return applied

    # ------------------------------------------------------------------
    # Bills
    # ------------------------------------------------------------------

    def save_bill(
        self,
        store_id: str,
        user_id: str,
        payload: BillCreate,
        idempotency_key: Optional[str] = None,
    ) -> Bill:
        """
        Persist a bill with its items, payments, coupon usage and customer
        balance changes in one transaction.
        """
        now = _utcnow()
        try:
            store = self.get_store(store_id)
            customer = self.resolve_customer(store_id, payload)
            lines = self.price_items(store, payload.items)

            lines_total = sum((line.amounts.total for line in lines), ZERO)
            manual_discount = min(round_money(payload.discount), lines_total)
            applied = self.apply_coupons(
                store_id,
                payload.all_coupon_codes(),
                lines,
                lines_total - manual_discount,
                customer.id,
                now,
                as_of=payload.billing_timestamp.date(),
            )
            coupon_discount = sum((a.discount for a in applied), ZERO)
            totals = compute_bill_totals(
                [line.amounts for line in lines], manual_discount + coupon_discount
            )

            codes = [a.coupon.coupon_code for a in applied]
            bill = Bill(
                store_id=store_id,
                customer_id=customer.id,
                invoice_number=generate_invoice_number(now),
                coupon_code=codes[0] if codes else None,
                coupon_codes=codes,
                referral_code=payload.referral_code,
                sub_total=totals.sub_total,
                discount=totals.discount,
                tax_amount=totals.tax,
                cgst_amount=totals.cgst,
                sgst_amount=totals.sgst,
                grand_total=totals.grand_total,
                paid_amount=ZERO,
                dues=totals.grand_total,
                status="unpaid",
                payment_mode=payload.payment_mode,
                payment_amount=round_money(payload.payment_amount),
                billing_timestamp=payload.billing_timestamp,
                payment_timestamp=payload.payment_timestamp,
                idempotency_key=idempotency_key,
                created_by=user_id,
            )
            try:
                self.repo.add_bill(self.db, bill)
            except IntegrityError:
                if idempotency_key:
                    logger.warning(f"⚠️ Duplicate bill submission with key {idempotency_key}")
                    raise ConflictError(BILL_CONFLICT_MESSAGE)
                raise

            for line in lines:
                self._add_item(bill, line)

            paid = ZERO
            for payment in payload.payments:
                if payment.mode == "advance":
                    self.advance.deduct_advance_payment(
                        customer,
                        payment.amount,
                        reference_id=bill.id,
                        description=f"Advance used for bill {bill.invoice_number}",
                    )
                self.repo.add_payment(
                    self.db,
                    bill_id=bill.id,
                    mode=payment.mode,
                    amount=round_money(payment.amount),
                    reference=payment.reference
                    or ("Advance deduction" if payment.mode == "advance" else None),
                    timestamp=payment.paid_at,
                )
                paid += round_money(payment.amount)

            excess = paid - totals.grand_total
            if excess > ZERO:
                self.advance.add_advance_payment(
                    customer,
                    excess,
                    reference_id=bill.id,
                    description=f"Excess payment on bill {bill.invoice_number}",
                )

            for a in applied:
                self.coupons.record_usage(
                    a.coupon, customer.id, bill.id, a.order_amount, a.discount, used_at=now
                )

            status, dues = payment_status(totals.grand_total, paid)
            bill.paid_amount = paid
            bill.dues = dues
            bill.status = ensure_transition("unpaid", status)

            customer.dues = round_money(to_decimal(customer.dues) + dues)
            customer.last_visit = payload.billing_timestamp

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"✅ Bill {bill.invoice_number} saved for store {store_id}: "
            f"total={totals.grand_total} paid={paid} status={bill.status}"
        )
        return self.get_bill_detail(store_id, bill.id)

    def _add_item(self, bill: Bill, line: PricedLine):
        item, amounts = line.item, line.amounts
        return self.repo.add_item(
            self.db,
            bill_id=bill.id,
            line_no=item.line_no,
            type=item.type,
            catalog_id=item.id,
            name=line.name,
            staff_id=item.staff_id,
            qty=item.qty,
            unit_price=line.unit_price,
            discount_type=normalize_discount_type(item.discount_type),
            discount_value=item.discount_value,
            cgst_rate=item.cgst,
            sgst_rate=item.sgst,
            base_amount=amounts.base,
            discount_amount=amounts.discount,
            taxable_amount=amounts.taxable,
            cgst_amount=amounts.cgst,
            sgst_amount=amounts.sgst,
            tax_amount=amounts.tax,
            line_total=amounts.total,
        )

    def get_bill_detail(self, store_id: str, bill_id: str) -> Bill:
        bill = self.repo.get_bill_detail(self.db, store_id, bill_id)
        if not bill:
            raise NotFoundError("Bill not found")
        return bill

    def list_bills(self, store_id: str, offset: int, limit: int, sort: str, **filters):
        return self.repo.list_bills(self.db, store_id, offset, limit, sort=sort, **filters)

    def list_customer_bills(
        self, store_id: str, customer_id: str, offset: int, limit: int, sort: str, **filters
    ):
        customer = self.advance.get_customer(store_id, customer_id)
        bills, total = self.repo.list_bills(
            self.db, store_id, offset, limit, sort=sort, customer_id=customer_id, **filters
        )
        summary = self.repo.customer_bill_summary(self.db, store_id, customer_id)
        return customer, bills, total, summary

    def add_payment(self, store_id: str, bill_id: str, data: BillPaymentCreate) -> Bill:
        """Append a payment to an existing bill and recompute its status"""
        try:
            bill = self.repo.get_bill(self.db, store_id, bill_id, for_update=True)
            if not bill:
                raise NotFoundError("Bill not found")
            if bill.status == "cancelled":
                raise ConflictError("Cannot record a payment on a cancelled bill")

            customer = bill.customer
            amount = round_money(data.amount)
            if data.mode == "advance":
                self.advance.deduct_advance_payment(
                    customer,
                    amount,
                    reference_id=bill.id,
                    description=f"Advance used for bill {bill.invoice_number}",
                )
            self.repo.add_payment(
                self.db,
                bill_id=bill.id,
                mode=data.mode,
                amount=amount,
                reference=data.reference,
                timestamp=data.timestamp or _utcnow(),
            )

            previous_dues = to_decimal(bill.dues)
            paid = round_money(to_decimal(bill.paid_amount) + amount)
            status, dues = payment_status(bill.grand_total, paid)

            # Overpayment beyond what was still due goes to the advance balance
            excess = amount - previous_dues
            if excess > ZERO:
                self.advance.add_advance_payment(
                    customer,
                    excess,
                    reference_id=bill.id,
                    description=f"Excess payment on bill {bill.invoice_number}",
                )

            bill.status = ensure_transition(bill.status, status)
            bill.paid_amount = paid
            bill.dues = dues
            bill.payment_timestamp = data.timestamp or _utcnow()
            customer.dues = max(
                round_money(to_decimal(customer.dues) - (previous_dues - dues)), ZERO
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"✅ Payment of {amount} recorded on bill {bill.invoice_number}")
        return self.get_bill_detail(store_id, bill_id)

    def cancel_bill(self, store_id: str, bill_id: str) -> Bill:
        try:
            bill = self.repo.get_bill(self.db, store_id, bill_id, for_update=True)
            if not bill:
                raise NotFoundError("Bill not found")
            bill.status = ensure_transition(bill.status, "cancelled")

            # Outstanding dues on a cancelled bill are no longer owed
            customer = bill.customer
            customer.dues = max(
                round_money(to_decimal(customer.dues) - to_decimal(bill.dues)), ZERO
            )
            bill.dues = ZERO
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"🚫 Bill {bill.invoice_number} cancelled")
        return self.get_bill_detail(store_id, bill_id)

    # ------------------------------------------------------------------
    # Held bills
    # ------------------------------------------------------------------

    def estimate_amount(self, store: Store, payload: HeldBillCreate) -> Decimal:
        """Grand total before coupons; pricing is read-only"""
        lines = self.price_items(store, payload.items)
        return compute_bill_totals([line.amounts for line in lines], payload.discount).grand_total

    def customer_summary(self, store_id: str, payload: HeldBillCreate) -> str:
        if payload.customer_id:
            customer = self.advance.repo.get_customer(self.db, store_id, payload.customer_id)
            if customer:
                return f"{customer.name} ({customer.phone_number})"
        elif payload.inline_customer:
            details = payload.inline_customer
            return f"{details.name} ({details.contact_no})"
        return "Unknown Customer"

    def hold_bill(
        self,
        store_id: str,
        user_id: str,
        payload: HeldBillCreate,
        raw_payload: dict,
        idempotency_key: Optional[str] = None,
    ) -> HeldBill:
        store = self.get_store(store_id)

        try:
            amount_estimate = self.estimate_amount(store, payload)
        except (NotFoundError, ValidationError, ValueError) as e:
            logger.warning(f"⚠️ Failed to calculate amount estimate for held bill: {e.__class__.__name__}: {e}")
            amount_estimate = ZERO

        try:
            held = self.repo.add_held_bill(
                self.db,
                store_id=store_id,
                payload=raw_payload,
                customer_summary=self.customer_summary(store_id, payload),
                amount_estimate=amount_estimate,
                idempotency_key=idempotency_key,
                created_by=user_id,
                created_at=_utcnow(),
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            if idempotency_key:
                logger.warning(f"⚠️ Duplicate held bill submission with key {idempotency_key}")
                raise ConflictError(HELD_CONFLICT_MESSAGE)
            raise
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"✅ Bill held for store {store_id}: {held.id} (estimate {amount_estimate})")
        return held

    def list_held_bills(self, store_id: str, offset: int, limit: int):
        return self.repo.list_held_bills(self.db, store_id, offset, limit)

    def get_held_bill(self, store_id: str, held_id: str) -> HeldBill:
        held = self.repo.get_held_bill(self.db, store_id, held_id)
        if not held:
            raise NotFoundError("Held bill not found")
        return held

    def delete_held_bill(self, store_id: str, held_id: str) -> None:
        held = self.get_held_bill(store_id, held_id)
        self.repo.delete_held_bill(self.db, held)
        logger.info(f"🗑️ Held bill {held_id} discarded")

    def suggested_invoice_number(self) -> str:
        return generate_invoice_number(_utcnow())
