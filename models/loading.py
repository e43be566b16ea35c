"""
Loading transaction schemas and state machine rules.
"""

from pydantic import Field
from typing import Optional
from enum import Enum
from datetime import datetime

from models.base import BaseSchema


class LoadingStatus(str, Enum):
    """Stored loading transaction states. Rejection deletes the row."""
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    COMPLETED = "COMPLETED"


ALLOWED_TRANSITIONS = {
    LoadingStatus.PENDING_APPROVAL: {LoadingStatus.APPROVED},
    LoadingStatus.APPROVED: {LoadingStatus.COMPLETED},
    LoadingStatus.COMPLETED: set(),
}


def current_status(raw: Optional[str]) -> LoadingStatus:
    """Stored status, treating NULL as PENDING_APPROVAL."""
    if raw is None:
        return LoadingStatus.PENDING_APPROVAL
    return LoadingStatus(raw)


def is_valid_transition(current: LoadingStatus, new: LoadingStatus) -> bool:
    """
    Check if a state transition is valid.

    Rules:
    - PENDING_APPROVAL -> APPROVED
    - APPROVED -> COMPLETED
    - COMPLETED is terminal
    """
    return new in ALLOWED_TRANSITIONS[current]


class RecommendationTier(str, Enum):
    """Which locality tier produced a recommendation, cheapest first."""
    SAME_ORDER = "SAME_ORDER"
    SAME_STYLE_COLOUR = "SAME_STYLE_COLOUR"
    SAME_STYLE = "SAME_STYLE"


# ===================
# REQUESTS
# ===================

class BundleSelection(BaseSchema):
    """A bundle picked for loading, with any damage/shortage deduction."""

    bundle_id: int = Field(..., ge=1)
    minus_qty: int = Field(default=0, description="Pieces deducted at loading time")
    reason: Optional[str] = Field(None, max_length=255)


class LoadingTransactionCreate(BaseSchema):
    employee_id: str = Field(..., min_length=1, description="Initiating production employee")
    line_no: int = Field(..., ge=1)
    order_id: int = Field(..., ge=1)
    quantities: dict[str, int] = Field(default_factory=dict, description="Pieces per size")
    bundles: list[BundleSelection] = Field(default_factory=list)


class ApproveRequest(BaseSchema):
    category_name: str = Field(..., min_length=1)
    approver_id: str = Field(..., min_length=1)


class RejectRequest(BaseSchema):
    category_name: str = Field(..., min_length=1)


class HandoverRequest(BaseSchema):
    category_name: str = Field(..., min_length=1)
    handover_id: str = Field(..., min_length=1)
    variant_style_id: Optional[str] = Field(None, description="Substitute style at the line")


# ===================
# RESPONSES
# ===================

class LoadingTransactionResponse(BaseSchema):
    loading_id: int
    size_category_id: int
    category_name: Optional[str] = None
    order_id: int
    line_no: int
    style_id: Optional[str] = None
    colour_code: Optional[str] = None
    created_by: str
    created_date: Optional[datetime] = None
    approved_status: Optional[LoadingStatus] = None
    approved_by: Optional[str] = None
    approved_date: Optional[datetime] = None
    handover_by: Optional[str] = None
    handover_date: Optional[datetime] = None
    handover_style_id: Optional[str] = None
    quantities: dict[str, int] = Field(default_factory=dict)
    bundle_ids: list[int] = Field(default_factory=list)


class RejectResponse(BaseSchema):
    loading_id: int
    released_bundle_ids: list[int]
    message: str


class RecommendationCandidate(BaseSchema):
    order_id: int
    style_id: str
    colour_code: str
    total_cut: int
    total_loaded: int
    remaining: int


class RecommendationResponse(BaseSchema):
    """Either a tiered recommendation or a no-history signal."""

    has_history: bool
    message: Optional[str] = None
    last_loading: Optional[LoadingTransactionResponse] = None
    tier: Optional[RecommendationTier] = None
    recommendation: Optional[RecommendationCandidate] = None


class LoadingDashboardResponse(BaseSchema):
    transactions: list[LoadingTransactionResponse]
    pending: list[LoadingTransactionResponse]
    pending_handover: list[LoadingTransactionResponse]
