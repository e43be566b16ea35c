"""
Read-only views of master data owned by other modules
(HR, IT order master, IE line setup).
"""

from pydantic import Field
from typing import Optional

from models.base import BaseSchema
from utils.text_utils import normalize_size_label


class EmployeeView(BaseSchema):
    """Employee with resolved department and designation."""

    emp_id: str = Field(..., description="Employee id")
    name: Optional[str] = None
    department_id: Optional[int] = None
    department_name: Optional[str] = None
    designation_id: Optional[int] = None
    designation_name: Optional[str] = None
    designation_level: Optional[int] = Field(
        None,
        description="Seniority rank; lower numbers denote higher authority"
    )
    status: Optional[str] = None

    def has_level_at_most(self, level: int) -> bool:
        return self.designation_level is not None and self.designation_level <= level


class SizeCategory(BaseSchema):
    """A named set of garment sizes (e.g. MEN TOP: S, M, L, XL)."""

    size_category_id: int
    name: str
    sizes: list[str] = Field(default_factory=list)

    def match_size(self, label: str) -> Optional[str]:
        """Return the declared size matching label (case-insensitive), or None."""
        wanted = normalize_size_label(label)
        for size in self.sizes:
            if normalize_size_label(size) == wanted:
                return size
        return None


class OrderView(BaseSchema):
    """Order header from the order master."""

    order_id: int
    buyer: Optional[str] = None
    style_id: str
    colour_code: str
    po: Optional[str] = None
    size_category_id: Optional[int] = None
    size_category_name: Optional[str] = None
    sizes: list[str] = Field(default_factory=list)
    status: Optional[str] = None


class LineView(BaseSchema):
    """Sewing line."""

    line_no: int
    line_name: Optional[str] = None
    status: Optional[str] = None
