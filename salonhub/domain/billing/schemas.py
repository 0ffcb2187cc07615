"""Billing domain schemas - Pydantic models for bill and held-bill payloads"""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...shared.validators import validate_e164_phone, validate_email

PAYMENT_TOLERANCE = Decimal("0.01")

ItemType = Literal["service", "product", "membership"]
PaymentMode = Literal["cash", "card", "upi", "wallet", "advance"]
BillPaymentMode = Literal["cash", "card", "upi", "wallet", "advance", "split", "none"]


class BillItemIn(BaseModel):
    """One line of a bill; price falls back to the catalog price when omitted"""

    line_no: int = Field(..., ge=1)
    type: ItemType
    id: str
    staff_id: Optional[str] = None
    qty: int = Field(1, ge=1)
    price: Optional[Decimal] = Field(None, ge=0)
    discount_type: Literal["percent", "percentage", "flat"] = "flat"
    discount_value: Decimal = Field(Decimal("0"), ge=0)
    cgst: Decimal = Field(Decimal("0"), ge=0, le=100)
    sgst: Decimal = Field(Decimal("0"), ge=0, le=100)


class PaymentIn(BaseModel):
    mode: PaymentMode
    amount: Decimal = Field(..., gt=0)
    reference: Optional[str] = None
    timestamp: Optional[datetime] = None
    payment_timestamp: Optional[datetime] = None

    @model_validator(mode="after")
    def require_timestamp(self):
        if self.timestamp is None and self.payment_timestamp is None:
            raise ValueError("Payment requires timestamp or payment_timestamp")
        return self

    @property
    def paid_at(self) -> datetime:
        return self.payment_timestamp or self.timestamp


class CustomerIn(BaseModel):
    """Inline customer, found or created by phone number"""

    name: str = Field(..., min_length=1, max_length=255)
    contact_no: str
    gender: Optional[str] = None
    address: Optional[str] = None
    email: Optional[str] = None
    birthday: Optional[date] = None
    anniversary: Optional[date] = None

    @field_validator("contact_no")
    @classmethod
    def validate_contact_no(cls, v):
        return validate_e164_phone(v)

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v):
        if v:
            return validate_email(v)
        return v


class BillDraft(BaseModel):
    """Fields shared by finalized and held bills"""

    customer_id: Optional[str] = None
    customer: Optional[CustomerIn] = None
    customer_details: Optional[CustomerIn] = None
    items: list[BillItemIn] = Field(..., min_length=1)
    discount: Decimal = Field(Decimal("0"), ge=0)
    coupon_code: Optional[str] = None
    coupon_codes: list[str] = Field(default_factory=list)
    referral_code: Optional[str] = None

    @model_validator(mode="after")
    def exactly_one_customer(self):
        provided = [
            f for f in ("customer_id", "customer", "customer_details") if getattr(self, f)
        ]
        if len(provided) != 1:
            raise ValueError("Provide exactly one of customer_id, customer or customer_details")
        return self

    @model_validator(mode="after")
    def unique_line_numbers(self):
        line_numbers = [item.line_no for item in self.items]
        if len(line_numbers) != len(set(line_numbers)):
            raise ValueError("Item line_no values must be unique")
        return self

    @property
    def inline_customer(self) -> Optional[CustomerIn]:
        return self.customer or self.customer_details

    def all_coupon_codes(self) -> list[str]:
        """coupon_code followed by coupon_codes, de-duplicated in order"""
        codes = []
        for code in [self.coupon_code, *self.coupon_codes]:
            code = (code or "").strip()
            if code and code not in codes:
                codes.append(code)
        return codes


class BillCreate(BillDraft):
    payment_mode: BillPaymentMode
    payment_amount: Decimal = Field(..., ge=0)
    payments: list[PaymentIn] = Field(default_factory=list)
    billing_timestamp: datetime
    payment_timestamp: Optional[datetime] = None

    @model_validator(mode="after")
    def payments_match_mode(self):
        total = sum((p.amount for p in self.payments), Decimal("0"))
        if abs(total - self.payment_amount) > PAYMENT_TOLERANCE:
            raise ValueError("payment_amount must equal the sum of payments")

        if self.payment_mode == "none":
            if self.payment_amount != 0 or self.payments:
                raise ValueError("payment_mode none requires payment_amount 0 and no payments")
        elif self.payment_mode == "split":
            if len(self.payments) < 2:
                raise ValueError("split payment requires at least two payments")
        else:
            if len(self.payments) != 1:
                raise ValueError(f"payment_mode {self.payment_mode} requires exactly one payment")
            if self.payments[0].mode not in (self.payment_mode, "advance"):
                raise ValueError("Payment mode does not match payment_mode")
        return self


class HeldBillCreate(BillDraft):
    """Draft bill; payment details are optional until checkout"""

    payment_mode: BillPaymentMode = "none"
    payment_amount: Decimal = Field(Decimal("0"), ge=0)
    payments: list[PaymentIn] = Field(default_factory=list)
    billing_timestamp: Optional[datetime] = None
    payment_timestamp: Optional[datetime] = None


class BillPaymentCreate(BaseModel):
    """Payment recorded after checkout against an existing bill"""

    mode: PaymentMode
    amount: Decimal = Field(..., gt=0)
    reference: Optional[str] = None
    timestamp: Optional[datetime] = None
