"""Coupon domain schemas - Pydantic models for validation"""

from datetime import date
from decimal import Decimal
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from ..billing.calculator import normalize_discount_type


class DiscountIn(BaseModel):
    # "fixed" is the legacy spelling of "flat"
    type: Literal["flat", "fixed", "percentage"]
    value: Decimal = Field(..., ge=0, le=Decimal("999999.99"))

    @field_validator("type")
    @classmethod
    def normalize_type(cls, v):
        return normalize_discount_type(v)

    @model_validator(mode="after")
    def percentage_within_hundred(self):
        if self.type == "percentage" and self.value > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        return self


class ConditionsIn(BaseModel):
    minimumSpend: Decimal = Field(Decimal("0"), ge=0)
    maximumDisc: Optional[Decimal] = Field(None, ge=0)
    limit: int = Field(1, ge=1)
    limitRefereshDays: int = Field(
        30, ge=1, validation_alias=AliasChoices("limitRefereshDays", "limitRefreshDays")
    )


class ConditionsUpdate(BaseModel):
    minimumSpend: Optional[Decimal] = Field(None, ge=0)
    maximumDisc: Optional[Decimal] = Field(None, ge=0)
    limit: Optional[int] = Field(None, ge=1)
    limitRefereshDays: Optional[int] = Field(
        None, ge=1, validation_alias=AliasChoices("limitRefereshDays", "limitRefreshDays")
    )


class InclusionIn(BaseModel):
    allIncluded: bool = False
    inclusions: list[str] = Field(default_factory=list)


class CouponCreate(BaseModel):
    """Schema for creating a coupon"""

    couponCode: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    validFrom: date = Field(..., validation_alias=AliasChoices("validFrom", "validForm"))
    validTill: date
    discount: DiscountIn
    conditions: ConditionsIn = Field(default_factory=ConditionsIn)
    includedServices: InclusionIn = Field(default_factory=InclusionIn)
    includedProducts: InclusionIn = Field(default_factory=InclusionIn)
    includedMemberships: InclusionIn = Field(default_factory=InclusionIn)
    status: Literal["active", "inactive"] = "active"

    @field_validator("couponCode")
    @classmethod
    def strip_code(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Coupon code is required")
        return v

    @model_validator(mode="after")
    def window_is_ordered(self):
        if self.validTill < self.validFrom:
            raise ValueError("validTill must not be before validFrom")
        return self


class CouponUpdate(BaseModel):
    """Schema for updating a coupon; only the listed fields can change"""

    couponCode: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    validFrom: Optional[date] = Field(None, validation_alias=AliasChoices("validFrom", "validForm"))
    validTill: Optional[date] = None
    discount: Optional[DiscountIn] = None
    conditions: Optional[ConditionsUpdate] = None
    includedServices: Optional[InclusionIn] = None
    includedProducts: Optional[InclusionIn] = None
    includedMemberships: Optional[InclusionIn] = None
    status: Optional[Literal["active", "inactive", "expired"]] = None

    @field_validator("couponCode")
    @classmethod
    def strip_code(cls, v):
        if v is not None:
            v = v.strip()
            if not v:
                raise ValueError("Coupon code cannot be empty")
        return v

    @model_validator(mode="after")
    def window_is_ordered(self):
        if self.validFrom and self.validTill and self.validTill < self.validFrom:
            raise ValueError("validTill must not be before validFrom")
        return self


class CouponValidateRequest(BaseModel):
    couponCode: str = Field(..., min_length=1, max_length=100)
    orderAmount: Decimal = Field(..., ge=0)
    serviceIds: list[str] = Field(default_factory=list)
    productIds: list[str] = Field(default_factory=list)
    membershipIds: list[str] = Field(default_factory=list)
    customerId: Optional[str] = None
