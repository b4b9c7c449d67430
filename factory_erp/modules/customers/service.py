from sqlalchemy.orm import Session
from uuid import UUID

from factory_erp.common.exceptions import InvoiceValidationError
from factory_erp.modules.customers.models import Customer


class CustomerDirectory:
    """Read-only customer lookup used by invoicing"""

    def __init__(self, db: Session):
        self.db = db

    def require_billable_customer(self, customer_id: UUID) -> Customer:
        """Customer must exist and be active to receive a new invoice."""
        customer = self.db.query(Customer).filter(Customer.id == customer_id).first()
        if not customer:
            raise InvoiceValidationError(
                "Customer does not exist", field="customer_id", customer_id=str(customer_id)
            )
        if not customer.is_active:
            raise InvoiceValidationError(
                "Customer is inactive", field="customer_id", customer_id=str(customer_id)
            )
        return customer
