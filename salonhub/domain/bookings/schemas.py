"""Booking domain schemas - Pydantic models for validation"""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from ...shared.validators import validate_country_code, validate_email, validate_local_phone

BookingStatus = Literal["scheduled", "in-progress", "completed", "cancelled"]


class BookingItemIn(BaseModel):
    service_id: str
    service_name: Optional[str] = Field(None, max_length=255)
    unit_price: Decimal = Field(..., ge=0)
    staff_id: Optional[str] = None
    staff_name: Optional[str] = Field(None, max_length=255)
    quantity: int = Field(1, ge=1)
    scheduled_at: datetime
    # Older clients send the misspelled "vanue"
    venue: Optional[str] = Field(
        None, max_length=255, validation_alias=AliasChoices("venue", "vanue")
    )


class BookingCreate(BaseModel):
    """Schema for creating or replacing a booking"""

    customer_id: Optional[str] = None
    country_code: str = "+91"
    contact_no: str
    customer_name: str = Field(..., min_length=1, max_length=255)
    gender: Optional[Literal["male", "female", "other"]] = None
    email: Optional[str] = None
    address: Optional[str] = None
    booking_datetime: datetime
    venue_type: Literal["indoor", "outdoor"] = "indoor"
    remarks: Optional[str] = None
    advance_amount: Decimal = Field(Decimal("0"), ge=0)
    payment_mode: Optional[Literal["cash", "card", "online"]] = None
    items: list[BookingItemIn] = Field(..., min_length=1)

    @field_validator("country_code")
    @classmethod
    def check_country_code(cls, v):
        return validate_country_code(v.strip())

    @field_validator("contact_no")
    @classmethod
    def check_contact_no(cls, v):
        return validate_local_phone(v.strip())

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        if v:
            return validate_email(v)
        return v

    @property
    def phone_number(self) -> str:
        return f"{self.country_code}{self.contact_no}"


class BookingStatusUpdate(BaseModel):
    status: BookingStatus
