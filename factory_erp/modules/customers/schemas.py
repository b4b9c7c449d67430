from pydantic import BaseModel
from typing import Optional
from uuid import UUID


class CustomerForInvoice(BaseModel):
    """Customer projection shown alongside an invoice"""
    id: UUID
    code: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    full_address: Optional[str] = None
    gst_number: Optional[str] = None
    pan_number: Optional[str] = None
    payment_terms_days: int = 30

    class Config:
        from_attributes = True
