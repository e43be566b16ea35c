"""
Text utilities for size labels and size-category names.

Master data is typed by hand in several screens, so the same category
shows up as "Men Top", "MEN  TOP" or "men top".
"""

import unicodedata
from typing import Optional


def normalize_category_name(name: Optional[str]) -> Optional[str]:
    """
    Normalize a size-category name for comparison.

    - "Men  Top" → "MEN TOP"
    - "  niño bottom " → "NINO BOTTOM"

    Args:
        name: Category name as typed

    Returns:
        Uppercase ASCII with single spaces, or None if input is empty
    """
    if not name:
        return None

    name = " ".join(name.split())

    if not name:
        return None

    # NFD separates base chars from accents; drop the accents (category 'Mn')
    normalized = unicodedata.normalize('NFD', name)
    ascii_name = ''.join(
        c for c in normalized
        if unicodedata.category(c) != 'Mn'
    )

    return ascii_name.upper()


def normalize_size_label(size: Optional[str]) -> str:
    """
    Normalize a size label for matching ("xl " → "xl", "2 XL" → "2xl").
    """
    if not size:
        return ""
    return "".join(size.split()).lower()


def parse_size_list(sizes: Optional[str]) -> list[str]:
    """
    Split the comma-separated size list stored on a size category.

    Blank entries are dropped, order is preserved.
    """
    if not sizes:
        return []
    return [s.strip() for s in sizes.split(",") if s.strip()]
