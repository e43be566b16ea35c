"""
Cutting ledger schemas.
"""

from pydantic import Field
from typing import Optional
from datetime import datetime

from models.base import BaseSchema


class CuttingItem(BaseSchema):
    """Pieces cut for one size in a lay."""

    size: str = Field(..., min_length=1, max_length=32)
    qty: int = Field(..., ge=0, description="Pieces cut (added to any existing entry)")


class CuttingCreate(BaseSchema):
    """Record one lay of cutting against an order."""

    lay_no: int = Field(default=1, ge=1, description="Lay number")
    cuttings: list[CuttingItem] = Field(..., min_length=1)


class CuttingEntryResponse(BaseSchema):
    """A cutting ledger row."""

    cutting_id: int
    order_id: int
    lay_no: int
    style_id: str
    colour_code: str
    size: str
    qty: int
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None


class CuttingAvailability(BaseSchema):
    """A cutting entry with its remaining bundling capacity."""

    cutting_id: int
    lay_no: int
    style_id: str
    colour_code: str
    size: str
    cutting_qty: int
    bundled_qty: int
    available_qty: int


class CuttingSizeStat(BaseSchema):
    size: str
    order_qty: int
    cut_qty: int
    available_for_cutting: int


class CuttingStatsResponse(BaseSchema):
    order_id: int
    sizes: list[CuttingSizeStat]
    total_order_qty: int
    total_cut_qty: int
