"""
Bundle schemas for validation and serialization.
"""

from pydantic import Field
from typing import Optional
from datetime import datetime

from models.base import BaseSchema


class BundleCreate(BaseSchema):
    """
    Create a bundle against a cutting entry.

    qty must equal ending_no - starting_no + 1; that is checked by the
    service so the error carries the standard envelope.
    """

    cutting_id: int = Field(..., ge=1)
    qty: int = Field(..., gt=0)
    starting_no: int = Field(..., ge=1)
    ending_no: int = Field(..., ge=1)


class BundleUpdate(BaseSchema):
    """Change the size or serial range of an unconsumed bundle."""

    qty: int = Field(..., gt=0)
    starting_no: int = Field(..., ge=1)
    ending_no: int = Field(..., ge=1)


class BundleResponse(BaseSchema):
    """Bundle with its consumption link."""

    bundle_id: int
    cutting_id: int
    style_id: str
    colour_code: str
    size: str
    qty: int
    starting_no: int
    ending_no: int
    loading_tx_id: Optional[int] = None
    size_category_id: Optional[int] = None
    minus_qty: int = 0
    minus_reason: Optional[str] = None
    final_qty: Optional[int] = None
    created_by: Optional[str] = None
    last_changed_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Joined cutting info (optional)
    order_id: Optional[int] = None
    lay_no: Optional[int] = None


class NextNumberResponse(BaseSchema):
    next_starting_number: int


class SizeBundleStats(BaseSchema):
    """Cutting and bundling progress for one size."""

    size: str
    order_qty: int
    cut_qty: int
    bundled_qty: int
    available_for_cutting: int
    available_for_bundling: int
    cutting_percentage: float
    bundling_percentage: float
    cutting_status: str
    bundling_status: str


class BundleStatsResponse(BaseSchema):
    """Per-size aggregate view for an order."""

    order_id: int
    buyer: Optional[str] = None
    style_id: str
    colour_code: str
    sizes: list[SizeBundleStats]
    total_order_qty: int
    total_cut_qty: int
    total_bundled_qty: int
    total_cutting_percentage: float
    total_bundling_percentage: float
    total_cutting_status: str
    total_bundling_status: str


class DeleteBundleResponse(BaseSchema):
    bundle_id: int
    message: str
