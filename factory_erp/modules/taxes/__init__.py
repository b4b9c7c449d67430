"""
GST support: HSN code registry and the line-item tax calculator
"""

from .calculator import LineItemTaxResolver, TaxBreakdown, TaxGroup
from .models import HSNCode
from .service import HSNService

__all__ = ["LineItemTaxResolver", "TaxBreakdown", "TaxGroup", "HSNCode", "HSNService"]
