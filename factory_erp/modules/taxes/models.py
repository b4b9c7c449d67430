from factory_erp.database.database import Base
from sqlalchemy import Column, String, Numeric, Text
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from factory_erp.common.mixins import TimestampMixin


class HSNCode(Base, TimestampMixin):
    """
    Tax classification registry (HSN/SAC code -> default GST rate).

    The default rate prefills line items; a rate sent explicitly on the
    item always wins.
    """
    __tablename__ = "hsn_codes"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    code = Column(String(20), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)
