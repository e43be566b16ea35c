"""
Base schemas and mixins for all models.

Field names are snake_case in Python and camelCase on the wire.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BaseSchema(BaseModel):
    """
    Base for all schemas.

    Features:
        - Auto-trim whitespace from strings
        - Validate on attribute assignment
        - Allow ORM objects (from_attributes)
        - Accept and emit camelCase, accept snake_case too
    """
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        validate_assignment=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class PaginatedResponse(BaseSchema):
    """Standard paginated response wrapper."""
    data: list
    total: int
    page: int
    page_size: int
    total_pages: int

    @classmethod
    def create(cls, data: list, total: int, page: int, page_size: int):
        """Create paginated response from data."""
        total_pages = (total + page_size - 1) // page_size  # Ceiling division
        return cls(
            data=data,
            total=total,
            page=page,
            page_size=page_size,
            total_pages=total_pages
        )
