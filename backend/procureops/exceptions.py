"""
ProcureOps - Custom Exception Hierarchy

Provides structured, typed exceptions with error codes for consistent
error handling across the purchase order engine and its API.

Every exception carries a ``retryable`` flag so callers can tell a stale
version or an unavailable store (reload and try again) apart from a request
that will never succeed as submitted.

Usage:
    from procureops.exceptions import NotFoundError, OverReceiptError

    raise NotFoundError("Purchase order", po_id)
    raise ValidationError("Rejection reason is required", field="reason")
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional


class ProcureOpsException(Exception):
    """
    Base exception for all ProcureOps errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code (e.g., "NOT_FOUND", "VALIDATION_ERROR")
        status_code: HTTP status code to return
        retryable: Whether the same request may succeed after reloading
        details: Additional context for debugging
    """

    error_code: str = "PROCUREOPS_ERROR"
    status_code: int = 500
    retryable: bool = False

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response."""
        result = {
            "error": self.error_code,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            result["details"] = self.details
        return result


# ===================
# 400 Bad Request Errors
# ===================


class ValidationError(ProcureOpsException):
    """Raised when input validation fails."""

    error_code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        *,
        field: Optional[str] = None,
        value: Any = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details=details)


# ===================
# 403 Forbidden Errors
# ===================


class ForbiddenError(ProcureOpsException):
    """Raised when the caller lacks permission for an action."""

    error_code = "FORBIDDEN"
    status_code = 403

    def __init__(
        self,
        message: str = "Permission denied",
        *,
        action: Optional[str] = None,
        resource: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if action:
            details["action"] = action
        if resource:
            details["resource"] = resource
        super().__init__(message, details=details)


# ===================
# 404 Not Found Errors
# ===================


class NotFoundError(ProcureOpsException):
    """Raised when a resource is not found."""

    error_code = "NOT_FOUND"
    status_code = 404

    def __init__(
        self,
        resource: str = "Resource",
        resource_id: Any = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["resource"] = resource
        if resource_id is not None:
            details["resource_id"] = str(resource_id)
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(message, details=details)


# ===================
# 409 Conflict Errors
# ===================


class InvalidStateError(ProcureOpsException):
    """Raised when an operation is invalid for the current state."""

    error_code = "INVALID_STATE"
    status_code = 409

    def __init__(
        self,
        message: str = "Operation not allowed in current state",
        *,
        current_state: Optional[str] = None,
        allowed_states: Optional[List[str]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if current_state:
            details["current_state"] = current_state
        if allowed_states:
            details["allowed_states"] = allowed_states
        super().__init__(message, details=details)


class ConcurrencyConflictError(ProcureOpsException):
    """Raised when a write carries a version that is no longer current."""

    error_code = "CONCURRENCY_CONFLICT"
    status_code = 409
    retryable = True

    def __init__(
        self,
        message: str = "Resource was modified by another request",
        *,
        expected_version: Optional[int] = None,
        current_version: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if expected_version is not None:
            details["expected_version"] = expected_version
        if current_version is not None:
            details["current_version"] = current_version
        super().__init__(message, details=details)


# ===================
# 422 Unprocessable Entity Errors
# ===================


class BusinessRuleError(ProcureOpsException):
    """Raised when a business rule is violated."""

    error_code = "BUSINESS_RULE_ERROR"
    status_code = 422

    def __init__(
        self,
        message: str = "Business rule violation",
        *,
        rule: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if rule:
            details["rule"] = rule
        super().__init__(message, details=details)


class UnknownLineItemError(BusinessRuleError):
    """Raised when a received product has no matching line on the order."""

    error_code = "UNKNOWN_LINE_ITEM"

    def __init__(
        self,
        product_id: str,
        *,
        po_number: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["product_id"] = product_id
        if po_number:
            details["po_number"] = po_number
        message = f"Product {product_id} is not on this purchase order"
        super().__init__(message, details=details)


class OverReceiptError(BusinessRuleError):
    """Raised when a receipt would push a line past its ordered quantity."""

    error_code = "OVER_RECEIPT"

    def __init__(
        self,
        product_id: str,
        *,
        line_number: int,
        ordered: Decimal,
        already_received: Decimal,
        attempted: Decimal,
        details: Optional[Dict[str, Any]] = None,
    ):
        remaining = ordered - already_received
        details = details or {}
        details["product_id"] = product_id
        details["line_number"] = line_number
        details["ordered"] = str(ordered)
        details["already_received"] = str(already_received)
        details["attempted"] = str(attempted)
        details["remaining"] = str(remaining)
        message = (
            f"Cannot receive {attempted} of product {product_id} on line {line_number}. "
            f"Only {remaining} remaining."
        )
        super().__init__(message, details=details)


class InsufficientStockError(BusinessRuleError):
    """Raised when a decrement would take on-hand stock below zero."""

    error_code = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        product_id: str,
        *,
        warehouse_id: str,
        requested: Decimal,
        available: Decimal,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["product_id"] = product_id
        details["warehouse_id"] = warehouse_id
        details["requested"] = str(requested)
        details["available"] = str(available)
        message = (
            f"Insufficient stock for {product_id} in {warehouse_id}: "
            f"requested {requested}, available {available}"
        )
        super().__init__(message, details=details)


# ===================
# 500 Internal Server Errors
# ===================


class LedgerError(ProcureOpsException):
    """Raised when the stock ledger rejects a mutation."""

    error_code = "LEDGER_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str = "Stock ledger update failed",
        *,
        product_id: Optional[str] = None,
        warehouse_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if product_id:
            details["product_id"] = product_id
        if warehouse_id:
            details["warehouse_id"] = warehouse_id
        super().__init__(message, details=details)


# ===================
# 503 Service Unavailable Errors
# ===================


class PersistenceUnavailableError(ProcureOpsException):
    """Raised when the store or ledger times out or cannot be reached."""

    error_code = "PERSISTENCE_UNAVAILABLE"
    status_code = 503
    retryable = True

    def __init__(
        self,
        operation: str = "Persistence",
        message: str = "temporarily unavailable",
        *,
        retry_after: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["operation"] = operation
        if retry_after:
            details["retry_after_seconds"] = retry_after
        super().__init__(f"{operation} {message}", details=details)
