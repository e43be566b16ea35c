"""
Request dependencies shared by the API routers.

Authentication happens at the gateway; it forwards the resolved identity
as headers. When API_KEY is configured the gateway must also present it.
"""

import secrets
from typing import Optional

from fastapi import Header, HTTPException, status

from config import settings
from models.auth import Actor


def _parse_permissions(raw: Optional[str]) -> frozenset[str]:
    if not raw:
        return frozenset()
    return frozenset(p.strip().upper() for p in raw.split(",") if p.strip())


def get_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_employee_id: Optional[str] = Header(None),
    x_actor_permissions: Optional[str] = Header(None),
    x_api_key: Optional[str] = Header(None),
) -> Actor:
    """
    Build the acting user from gateway headers.

    Raises:
        HTTPException 401: Missing actor or wrong API key
    """
    if settings.api_key and not secrets.compare_digest(x_api_key or "", settings.api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": {"code": "INVALID_API_KEY", "message": "Invalid or missing API key"}}
        )

    if not x_actor_id or not x_actor_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": {"code": "UNAUTHENTICATED", "message": "Authenticated actor required"}}
        )

    return Actor(
        user_id=x_actor_id.strip(),
        employee_id=(x_actor_employee_id or "").strip() or None,
        permissions=_parse_permissions(x_actor_permissions),
    )
