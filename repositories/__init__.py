"""
Repository layer for multi-row production queries.
"""

from repositories.loading_repository import (
    LoadingRepository,
    last_completed_on_line,
    list_transactions,
    order_progress,
    completed_condition,
    pending_condition,
    pending_handover_condition,
)

__all__ = [
    "LoadingRepository",
    "last_completed_on_line",
    "list_transactions",
    "order_progress",
    "completed_condition",
    "pending_condition",
    "pending_handover_condition",
]
