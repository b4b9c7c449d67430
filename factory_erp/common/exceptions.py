"""
Typed errors raised by the invoicing engine.

Every error is an ``HTTPException`` so FastAPI renders it directly, and
carries a machine-readable ``code`` so callers can tell bad input apart from
an operation that is not allowed right now:

    EngineError
    +-- InvoiceValidationError   422  validation_error
    +-- BusinessRuleViolation    400  business_rule_violation
    |   +-- InvalidStateTransition    invalid_state_transition
    |   +-- OverpaymentError          overpayment
    +-- NotFoundError            404  not_found
    +-- ConflictError            409  conflict
    +-- StorageError             500  storage_error

The response body is ``{"detail": {"code": ..., "message": ..., **data}}``.
"""
from typing import Any, Dict

from fastapi import HTTPException, status


class EngineError(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "engine_error"

    def __init__(self, message: str, **data: Any):
        self.message = message
        self.data: Dict[str, Any] = data
        super().__init__(
            status_code=type(self).status_code,
            detail={"code": self.code, "message": message, **data},
        )

    def __str__(self) -> str:
        return self.message


class InvoiceValidationError(EngineError):
    status_code = 422
    code = "validation_error"


class BusinessRuleViolation(EngineError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "business_rule_violation"


class InvalidStateTransition(BusinessRuleViolation):
    code = "invalid_state_transition"

    def __init__(self, message: str, current_status=None, **data: Any):
        if current_status is not None:
            data["current_status"] = getattr(current_status, "value", current_status)
        super().__init__(message, **data)


class OverpaymentError(BusinessRuleViolation):
    code = "overpayment"

    def __init__(self, amount, remaining_balance):
        self.remaining_balance = remaining_balance
        super().__init__(
            f"Payment of {amount} exceeds the remaining balance of {remaining_balance}",
            amount=str(amount),
            remaining_balance=str(remaining_balance),
        )


class NotFoundError(EngineError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ConflictError(EngineError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class StorageError(EngineError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "storage_error"
