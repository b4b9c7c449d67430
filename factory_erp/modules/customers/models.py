"""
Customer records consumed by invoicing.

Customers are maintained by the CRM side of the application; the invoicing
engine only looks them up by id to validate references and to show display
data next to an invoice.
"""

from factory_erp.database.database import Base
from sqlalchemy import Column, String, Boolean, Integer, Text
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from factory_erp.common.mixins import TimestampMixin


class Customer(Base, TimestampMixin):
    __tablename__ = "customers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    code = Column(String(20), nullable=False, unique=True)
    name = Column(String(200), nullable=False, index=True)
    email = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)

    # Billing address
    address = Column(Text, nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)
    pincode = Column(String(10), nullable=True)

    # Tax identification
    gst_number = Column(String(15), nullable=True)
    pan_number = Column(String(10), nullable=True)

    payment_terms_days = Column(Integer, nullable=False, default=30)
    is_active = Column(Boolean, nullable=False, default=True)

    @property
    def full_address(self) -> str:
        parts = [p for p in (self.address, self.city, self.state) if p]
        text = ", ".join(parts)
        if self.pincode:
            text = f"{text} - {self.pincode}" if text else self.pincode
        return text
