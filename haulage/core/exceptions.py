"""
Custom Exception Hierarchy

Structured exceptions raised inside the services. The module boundary
(see ``haulage.domain.results``) turns them into result values; the HTTP
layer renders any that escape as JSON error bodies.
"""
from typing import Any
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for API responses"""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"
    VALIDATION_ERROR = "ERR_1001"
    NOT_FOUND = "ERR_1002"

    # Invoice / payment errors (2xxx)
    INVOICE_NOT_FOUND = "ERR_2001"
    PAYMENT_NOT_FOUND = "ERR_2002"
    INVALID_AMOUNT = "ERR_2003"
    CONTRACTOR_NOT_FOUND = "ERR_2004"
    ROUTE_NOT_PRICED = "ERR_2005"
    TRIP_ALREADY_INVOICED = "ERR_2006"

    # Statement errors (3xxx)
    STATEMENT_NOT_FOUND = "ERR_3001"
    EMPTY_STATEMENT = "ERR_3002"
    UNKNOWN_STATEMENT_ITEM = "ERR_3003"

    # Persistence errors (4xxx)
    PERSISTENCE_ERROR = "ERR_4001"


class AppException(Exception):
    """Base exception for all application errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response"""
        return {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "details": self.details
            }
        }


class ValidationException(AppException):
    """Raised when input validation fails"""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
        error_code: ErrorCode = ErrorCode.VALIDATION_ERROR
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=400,
            details=details
        )
        if field:
            self.details["field"] = field


class NotFoundException(AppException):
    """Raised when a requested resource is not found"""

    def __init__(
        self,
        resource: str,
        identifier: Any,
        error_code: ErrorCode = ErrorCode.NOT_FOUND
    ):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            error_code=error_code,
            status_code=404,
            details={"resource": resource, "identifier": str(identifier)}
        )


class InvoiceNotFoundError(NotFoundException):
    def __init__(self, invoice_id: int):
        super().__init__("Invoice", invoice_id, ErrorCode.INVOICE_NOT_FOUND)


class PaymentNotFoundError(NotFoundException):
    def __init__(self, payment_id: int):
        super().__init__("Payment", payment_id, ErrorCode.PAYMENT_NOT_FOUND)


class ContractorNotFoundError(NotFoundException):
    def __init__(self, contractor_id: int):
        super().__init__("Contractor", contractor_id, ErrorCode.CONTRACTOR_NOT_FOUND)


class StatementNotFoundError(NotFoundException):
    def __init__(self, statement_id: int):
        super().__init__("Statement", statement_id, ErrorCode.STATEMENT_NOT_FOUND)


class InvalidAmountError(ValidationException):
    """Raised when a money or quantity field is not a positive, storable amount"""

    def __init__(self, field: str, amount: Any, reason: str = "must be greater than zero"):
        super().__init__(
            message=f"{field} {reason} (got {amount})",
            field=field,
            details={"value": str(amount)},
            error_code=ErrorCode.INVALID_AMOUNT
        )


class EmptyStatementSelectionError(ValidationException):
    def __init__(self, contractor_id: int):
        super().__init__(
            message="Select at least one invoice or payment to generate a statement",
            field="selected_item_ids",
            details={"contractor_id": contractor_id},
            error_code=ErrorCode.EMPTY_STATEMENT
        )


class UnknownStatementItemError(ValidationException):
    def __init__(self, contractor_id: int, item_ids: list[str]):
        super().__init__(
            message=f"Items do not belong to contractor {contractor_id}: {', '.join(item_ids)}",
            field="selected_item_ids",
            details={"contractor_id": contractor_id, "item_ids": item_ids},
            error_code=ErrorCode.UNKNOWN_STATEMENT_ITEM
        )


class PersistenceException(AppException):
    """Raised when the storage layer fails.

    The message is generic. The underlying cause is chained on
    ``__cause__`` and logged, never returned to the caller.
    """

    def __init__(self, operation: str):
        super().__init__(
            message="The operation could not be saved. Please try again.",
            error_code=ErrorCode.PERSISTENCE_ERROR,
            status_code=500,
            details={"operation": operation}
        )


class RouteNotPricedError(AppException):
    """Raised when no rate on the contractor's sites covers the route"""

    def __init__(self, contractor_id: int, material: str, origin: str, destination: str):
        super().__init__(
            message="Could not find a price defined for this material and route under this contractor.",
            error_code=ErrorCode.ROUTE_NOT_PRICED,
            status_code=400,
            details={
                "contractor_id": contractor_id,
                "material": material,
                "from": origin,
                "to": destination,
            }
        )


class TripAlreadyInvoicedError(AppException):
    def __init__(self, trip_ids: list[int]):
        super().__init__(
            message=f"Trips already invoiced: {', '.join(str(i) for i in trip_ids)}",
            error_code=ErrorCode.TRIP_ALREADY_INVOICED,
            status_code=409,
            details={"trip_ids": trip_ids}
        )
