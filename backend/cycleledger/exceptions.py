"""
CycleLedger - Custom Exception Hierarchy

Provides structured, typed exceptions with error codes so services can raise
domain failures and the API layer can map them to HTTP responses in one place.

Usage:
    from cycleledger.exceptions import NotFoundError, ValidationError

    # In a service
    raise NotFoundError("Production order", order_id)

    # With field context
    raise ValidationError("quantity_delta must be non-zero", field="quantity_delta")
"""
from typing import Any, Dict, Optional


class CycleLedgerException(Exception):
    """
    Base exception for all CycleLedger errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code (e.g., "NOT_FOUND", "VALIDATION_ERROR")
        status_code: HTTP status code to return
        details: Additional context for debugging
    """

    error_code: str = "CYCLELEDGER_ERROR"
    status_code: int = 500

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
        }
        if self.details:
            result["details"] = self.details
        return result


# ===================
# 400 Bad Request Errors
# ===================


class ValidationError(CycleLedgerException):
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
# 401 Unauthorized Errors
# ===================


class AuthenticationError(CycleLedgerException):
    """Raised when authentication fails."""

    error_code = "AUTHENTICATION_ERROR"
    status_code = 401

    def __init__(
        self,
        message: str = "Authentication required",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)


class InvalidTokenError(AuthenticationError):
    """Raised when a bearer token cannot be decoded or has expired."""

    error_code = "INVALID_TOKEN"

    def __init__(
        self,
        message: str = "Invalid token",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)


# ===================
# 403 Forbidden Errors
# ===================


class PermissionDeniedError(CycleLedgerException):
    """Raised when user lacks permission for an action."""

    error_code = "PERMISSION_DENIED"
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


class NotFoundError(CycleLedgerException):
    """Raised when a resource is not found in the caller's organization."""

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


class ConflictError(CycleLedgerException):
    """Raised when there's a resource conflict."""

    error_code = "CONFLICT"
    status_code = 409

    def __init__(
        self,
        message: str = "Resource conflict",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)


class CycleLockedError(ConflictError):
    """Raised when an inventory write targets a cycle whose inventory was carried forward."""

    error_code = "CYCLE_INVENTORY_LOCKED"

    def __init__(
        self,
        cycle_id: Any = None,
        *,
        message: str = (
            "This cycle is locked because inventory was carried forward. "
            "Create an adjustment in the current cycle instead."
        ),
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if cycle_id is not None:
            details["cycle_id"] = str(cycle_id)
        super().__init__(message, details=details)


# ===================
# 422 Unprocessable Entity Errors
# ===================


class InvalidStateError(CycleLedgerException):
    """Raised when an operation is invalid for the current state."""

    error_code = "INVALID_STATE"
    status_code = 422

    def __init__(
        self,
        message: str = "Operation not allowed in current state",
        *,
        current_state: Optional[str] = None,
        allowed_states: Optional[list] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if current_state:
            details["current_state"] = current_state
        if allowed_states:
            details["allowed_states"] = allowed_states
        super().__init__(message, details=details)


class BusinessRuleError(CycleLedgerException):
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


class InsufficientInventoryError(BusinessRuleError):
    """Raised when an outbound movement would take on-hand below zero."""

    error_code = "INSUFFICIENT_INVENTORY"

    def __init__(
        self,
        variant_label: str,
        *,
        requested: int,
        available: int,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["variant"] = variant_label
        details["requested"] = requested
        details["available"] = available
        message = f"Insufficient inventory for {variant_label}: requested {requested}, available {available}"
        super().__init__(message, rule="non_negative_stock", details=details)
