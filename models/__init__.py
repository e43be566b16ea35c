"""
Pydantic models for validation and serialization.
"""

from models.base import (
    BaseSchema,
    PaginatedResponse
)
from models.auth import Actor, MANAGE_CUTTING, SYSTEM_ADMIN
from models.master import EmployeeView, SizeCategory, OrderView, LineView
from models.cutting import (
    CuttingItem,
    CuttingCreate,
    CuttingEntryResponse,
    CuttingAvailability,
    CuttingSizeStat,
    CuttingStatsResponse,
)
from models.bundle import (
    BundleCreate,
    BundleUpdate,
    BundleResponse,
    NextNumberResponse,
    SizeBundleStats,
    BundleStatsResponse,
    DeleteBundleResponse,
)
from models.loading import (
    LoadingStatus,
    RecommendationTier,
    is_valid_transition,
    BundleSelection,
    LoadingTransactionCreate,
    ApproveRequest,
    RejectRequest,
    HandoverRequest,
    LoadingTransactionResponse,
    RejectResponse,
    RecommendationCandidate,
    RecommendationResponse,
    LoadingDashboardResponse,
)

__all__ = [
    # Base
    "BaseSchema",
    "PaginatedResponse",
    # Auth & master data
    "Actor",
    "MANAGE_CUTTING",
    "SYSTEM_ADMIN",
    "EmployeeView",
    "SizeCategory",
    "OrderView",
    "LineView",
    # Cutting
    "CuttingItem",
    "CuttingCreate",
    "CuttingEntryResponse",
    "CuttingAvailability",
    "CuttingSizeStat",
    "CuttingStatsResponse",
    # Bundles
    "BundleCreate",
    "BundleUpdate",
    "BundleResponse",
    "NextNumberResponse",
    "SizeBundleStats",
    "BundleStatsResponse",
    "DeleteBundleResponse",
    # Loading
    "LoadingStatus",
    "RecommendationTier",
    "is_valid_transition",
    "BundleSelection",
    "LoadingTransactionCreate",
    "ApproveRequest",
    "RejectRequest",
    "HandoverRequest",
    "LoadingTransactionResponse",
    "RejectResponse",
    "RecommendationCandidate",
    "RecommendationResponse",
    "LoadingDashboardResponse",
]
