"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    CapacityExceededError,
    RangeConflictError,
    BundleLockedError,
    PermissionDeniedError,
    InvalidStateError,
    DatabaseError,

    # Cutting & bundling
    BundleNotFoundError,
    CuttingEntryNotFoundError,

    # Master data
    OrderNotFoundError,
    SizeCategoryNotFoundError,
    EmployeeNotFoundError,
    EmployeeInactiveError,

    # Loading
    LoadingTransactionNotFoundError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "CapacityExceededError",
    "RangeConflictError",
    "BundleLockedError",
    "PermissionDeniedError",
    "InvalidStateError",
    "DatabaseError",

    # Cutting & bundling
    "BundleNotFoundError",
    "CuttingEntryNotFoundError",

    # Master data
    "OrderNotFoundError",
    "SizeCategoryNotFoundError",
    "EmployeeNotFoundError",
    "EmployeeInactiveError",

    # Loading
    "LoadingTransactionNotFoundError",
]
