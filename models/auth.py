"""
Authenticated actor as handed over by the authentication gateway.
"""

from typing import Optional

from pydantic import Field

from models.base import BaseSchema

MANAGE_CUTTING = "MANAGE_CUTTING"
SYSTEM_ADMIN = "SYSTEM_ADMIN"


class Actor(BaseSchema):
    """The user performing a request."""

    user_id: str = Field(..., min_length=1, description="Authenticated user id")
    employee_id: Optional[str] = Field(None, description="Linked employee id, if any")
    permissions: frozenset[str] = Field(default_factory=frozenset)

    def has_any(self, *permissions: str) -> bool:
        return bool(self.permissions.intersection(permissions))

    @property
    def can_manage_cutting(self) -> bool:
        return self.has_any(MANAGE_CUTTING, SYSTEM_ADMIN)
