"""
Size-category resolver.

Maps a garment size-category name to the typed handle that scopes every
per-category query (order quantities, loading transactions). Categories
are master data owned by the IT module and read through Supabase.
"""

from typing import Optional
import structlog

from config import get_supabase_client
from models.master import SizeCategory
from exceptions import SizeCategoryNotFoundError, ValidationError, DatabaseError
from utils.text_utils import normalize_category_name, parse_size_list

logger = structlog.get_logger(__name__)


def _to_category(row: dict) -> SizeCategory:
    return SizeCategory(
        size_category_id=row["size_category_id"],
        name=row["size_category_name"],
        sizes=parse_size_list(row.get("sizes")),
    )


class SizeCategoryService:
    """Read access to size categories and per-category size validation."""

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "size_categories"

    def list_categories(self) -> list[SizeCategory]:
        """All size categories, ordered by name."""
        try:
            result = (
                self.db.table(self.table)
                .select("size_category_id, size_category_name, sizes")
                .order("size_category_name")
                .execute()
            )
        except Exception as e:
            logger.error("list_size_categories_failed", error=str(e))
            raise DatabaseError("select", str(e))

        return [_to_category(row) for row in result.data]

    def get_by_id(self, size_category_id: int) -> SizeCategory:
        """
        Get a size category by id.

        Raises:
            SizeCategoryNotFoundError: If it doesn't exist
        """
        try:
            result = (
                self.db.table(self.table)
                .select("size_category_id, size_category_name, sizes")
                .eq("size_category_id", size_category_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("get_size_category_failed", size_category_id=size_category_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise SizeCategoryNotFoundError(size_category_id)
        return _to_category(result.data[0])

    def resolve(self, category_name: Optional[str]) -> SizeCategory:
        """
        Resolve a category name to its typed handle.

        Matching ignores case, accents and repeated whitespace, so
        "men  top" resolves to "MEN TOP".

        Raises:
            SizeCategoryNotFoundError: If no category matches
        """
        wanted = normalize_category_name(category_name)
        if not wanted:
            raise SizeCategoryNotFoundError(category_name or "")

        for category in self.list_categories():
            if normalize_category_name(category.name) == wanted:
                logger.debug(
                    "size_category_resolved",
                    category=category.name,
                    size_category_id=category.size_category_id
                )
                return category

        logger.warning("size_category_not_resolved", category=category_name)
        raise SizeCategoryNotFoundError(category_name)

    def validate_quantities(self, category: SizeCategory, quantities: dict[str, int]) -> dict[str, int]:
        """
        Check per-size quantities against the category's declared sizes.

        Returns:
            Map of every declared size to its quantity (0 when not given)

        Raises:
            ValidationError: Unknown size or negative quantity
        """
        resolved = {size: 0 for size in category.sizes}
        unknown = []

        for label, qty in (quantities or {}).items():
            size = category.match_size(label)
            if size is None:
                unknown.append(label)
                continue
            if qty is None or int(qty) < 0:
                raise ValidationError(
                    f"Invalid quantity for size {label}",
                    code="INVALID_SIZE_QUANTITY",
                    details={"size": label, "qty": qty}
                )
            resolved[size] += int(qty)

        if unknown:
            raise ValidationError(
                f"Sizes not in category {category.name}: {', '.join(unknown)}",
                code="UNKNOWN_SIZE",
                details={"category": category.name, "unknown_sizes": unknown, "sizes": category.sizes}
            )

        return resolved


# Singleton instance
_size_category_service: Optional[SizeCategoryService] = None


def get_size_category_service() -> SizeCategoryService:
    """Get or create SizeCategoryService instance."""
    global _size_category_service
    if _size_category_service is None:
        _size_category_service = SizeCategoryService()
    return _size_category_service
