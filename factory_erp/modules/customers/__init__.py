"""
Customer directory (read-only lookup for invoicing)
"""

from .models import Customer
from .schemas import CustomerForInvoice
from .service import CustomerDirectory

__all__ = ["Customer", "CustomerForInvoice", "CustomerDirectory"]
