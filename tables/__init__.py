"""
SQLAlchemy tables for production data.
"""

from tables.base import Base, utcnow
from tables.cutting import CuttingEntry
from tables.bundle import Bundle, BundleOperationScan
from tables.loading import LoadingTransaction, LoadingSizeQuantity

__all__ = [
    "Base",
    "utcnow",
    "CuttingEntry",
    "Bundle",
    "BundleOperationScan",
    "LoadingTransaction",
    "LoadingSizeQuantity",
]
