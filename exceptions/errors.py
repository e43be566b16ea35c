"""
Custom exception classes for the application.

Every error raised by a service is an AppError; routes turn them into
the standard JSON error envelope via to_dict().
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "BUNDLE_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: Any,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper().replace(' ', '_')}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": str(identifier)}
        )


class ValidationError(AppError):
    """Malformed or inconsistent input (400)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=400,
            details=details
        )


class CapacityExceededError(AppError):
    """Requested quantity exceeds the available pool (400)."""

    def __init__(self, requested: int, available: int, details: Optional[dict] = None):
        super().__init__(
            code="CAPACITY_EXCEEDED",
            message=f"Quantity ({requested}) exceeds available quantity ({available})",
            status_code=400,
            details={"requested": requested, "available": available, **(details or {})}
        )


class RangeConflictError(AppError):
    """Serial range overlaps an existing bundle (400)."""

    def __init__(self, starting_no: int, ending_no: int, conflicts: list[dict]):
        super().__init__(
            code="RANGE_CONFLICT",
            message=f"Bundle range {starting_no}-{ending_no} overlaps with existing bundles",
            status_code=400,
            details={
                "starting_no": starting_no,
                "ending_no": ending_no,
                "conflicts": conflicts
            }
        )


class BundleLockedError(AppError):
    """Mutation attempted on a consumed or already-processed bundle (400)."""

    def __init__(self, bundle_id: int, reason: str):
        super().__init__(
            code="BUNDLE_LOCKED",
            message=f"Bundle {bundle_id} cannot be changed: {reason}",
            status_code=400,
            details={"bundle_id": bundle_id, "reason": reason}
        )


class PermissionDeniedError(AppError):
    """Role or seniority gate failed (403)."""

    def __init__(
        self,
        message: str,
        code: str = "PERMISSION_DENIED",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=403,
            details=details
        )


class InvalidStateError(AppError):
    """State-machine transition attempted from the wrong state (409)."""

    def __init__(self, loading_id: int, current_state: Optional[str], action: str, expected: list[str]):
        super().__init__(
            code="INVALID_STATE",
            message=f"Cannot {action} loading transaction {loading_id} in state {current_state or 'PENDING_APPROVAL'}",
            status_code=409,
            details={
                "loading_id": loading_id,
                "current_state": current_state,
                "expected_states": expected,
                "action": action
            }
        )


class DatabaseError(AppError):
    """
    Database operation failed (500).

    The driver message is logged by the caller, never returned to clients.
    """

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )
        self.internal_message = message


# ===================
# SPECIFIC ERRORS
# ===================

class BundleNotFoundError(NotFoundError):
    """Bundle not found."""

    def __init__(self, bundle_id: int):
        super().__init__(
            resource="Bundle",
            identifier=bundle_id,
            code="BUNDLE_NOT_FOUND"
        )


class CuttingEntryNotFoundError(NotFoundError):
    """Cutting entry not found."""

    def __init__(self, cutting_id: int):
        super().__init__(
            resource="Cutting entry",
            identifier=cutting_id,
            code="CUTTING_ENTRY_NOT_FOUND"
        )


class OrderNotFoundError(NotFoundError):
    """Order not found in the order master."""

    def __init__(self, order_id: int):
        super().__init__(
            resource="Order",
            identifier=order_id,
            code="ORDER_NOT_FOUND"
        )


class SizeCategoryNotFoundError(NotFoundError):
    """Size category not found."""

    def __init__(self, category: Any):
        super().__init__(
            resource="Size category",
            identifier=category,
            code="SIZE_CATEGORY_NOT_FOUND"
        )


class LoadingTransactionNotFoundError(NotFoundError):
    """Loading transaction not found in the given size category."""

    def __init__(self, loading_id: int, category_name: Optional[str] = None):
        super().__init__(
            resource="Loading transaction",
            identifier=loading_id,
            code="LOADING_TRANSACTION_NOT_FOUND"
        )
        if category_name:
            self.details["category"] = category_name


class EmployeeNotFoundError(NotFoundError):
    """Employee not found."""

    def __init__(self, emp_id: str):
        super().__init__(
            resource="Employee",
            identifier=emp_id,
            code="EMPLOYEE_NOT_FOUND"
        )


class EmployeeInactiveError(PermissionDeniedError):
    """Employee exists but is not ACTIVE."""

    def __init__(self, emp_id: str, status: Optional[str]):
        super().__init__(
            code="EMPLOYEE_INACTIVE",
            message="Employee is inactive",
            details={"id": str(emp_id), "status": status}
        )
