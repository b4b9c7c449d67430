from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import datetime


class HSNBase(BaseModel):
    code: str = Field(..., min_length=2, max_length=20, description="HSN/SAC code (e.g. '6109')")
    description: Optional[str] = Field(None, max_length=500)
    tax_rate: Decimal = Field(Decimal('0'), ge=0, le=100, description="Default GST rate in percent (e.g. 5 for 5%)")

    @field_validator('code')
    @classmethod
    def validate_code(cls, v):
        v = v.strip()
        if not v.isalnum():
            raise ValueError('HSN code must be alphanumeric')
        return v


class HSNCreate(HSNBase):
    pass


class HSNUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=2, max_length=20)
    description: Optional[str] = Field(None, max_length=500)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)

    @field_validator('code')
    @classmethod
    def validate_code(cls, v):
        if v is None:
            return v
        v = v.strip()
        if not v.isalnum():
            raise ValueError('HSN code must be alphanumeric')
        return v


class HSNOut(HSNBase):
    id: UUID
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class HSNList(BaseModel):
    items: List[HSNOut]
    total: int
    limit: int
    offset: int


class TaxGroupOut(BaseModel):
    """One HSN/rate row of the CGST/SGST breakdown"""
    hsn_code: Optional[str] = None
    tax_rate: Decimal
    taxable_value: Decimal
    central_rate: Decimal
    central_amount: Decimal
    state_rate: Decimal
    state_amount: Decimal
    total_tax: Decimal
    item_count: int

    class Config:
        from_attributes = True


class TaxBreakdownOut(BaseModel):
    groups: List[TaxGroupOut]
    taxable_value: Decimal
    central_total: Decimal
    state_total: Decimal
    tax_amount: Decimal
    rounding_difference: Decimal

    class Config:
        from_attributes = True
