"""
Bundle API routes.

Serial-numbered bundles cut from a cutting entry.
"""

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from typing import Optional
import structlog

from models.auth import Actor
from models.bundle import (
    BundleCreate,
    BundleUpdate,
    BundleResponse,
    NextNumberResponse,
    DeleteBundleResponse,
)
from routes.dependencies import get_actor
from services.bundle_service import get_bundle_service
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/bundles", tags=["Bundles"])


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


# ===================
# ROUTES
# ===================

@router.post(
    "",
    response_model=BundleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a bundle"
)
def create_bundle(data: BundleCreate, actor: Actor = Depends(get_actor)):
    """
    Create a bundle against a cutting entry.

    Raises:
        400: Range mismatch, overlap with another bundle, or not enough cut pieces
        403: Actor may not manage bundles
        404: Cutting entry not found
    """
    try:
        return get_bundle_service().create(data, actor)
    except Exception as e:
        return handle_error(e)


@router.get(
    "/next-number",
    response_model=NextNumberResponse,
    summary="Next free starting serial for a style/colour"
)
def next_number(
    style_id: str = Query(..., alias="styleId", min_length=1),
    colour_code: str = Query(..., alias="colourCode", min_length=1),
    actor: Actor = Depends(get_actor)
):
    try:
        number = get_bundle_service().next_starting_number(style_id, colour_code)
        return NextNumberResponse(next_starting_number=number)
    except Exception as e:
        return handle_error(e)


@router.get(
    "/records",
    response_model=list[BundleResponse],
    summary="Bundle journal"
)
def list_records(
    style_id: Optional[str] = Query(None, alias="styleId"),
    order_id: Optional[int] = Query(None, alias="orderId"),
    actor: Actor = Depends(get_actor)
):
    """Most recent bundles, optionally filtered by style or order."""
    try:
        return get_bundle_service().get_records(style_id=style_id, order_id=order_id)
    except Exception as e:
        return handle_error(e)


@router.get(
    "/{bundle_id}",
    response_model=BundleResponse,
    summary="Get a bundle"
)
def get_bundle(bundle_id: int, actor: Actor = Depends(get_actor)):
    try:
        return get_bundle_service().get_by_id(bundle_id)
    except Exception as e:
        return handle_error(e)


@router.put(
    "/{bundle_id}",
    response_model=BundleResponse,
    summary="Update a bundle"
)
def update_bundle(bundle_id: int, data: BundleUpdate, actor: Actor = Depends(get_actor)):
    """
    Change qty and range of a bundle not yet loaded or scanned.

    Raises:
        400: Range mismatch, overlap, capacity, or bundle locked
        404: Bundle not found
    """
    try:
        return get_bundle_service().update(bundle_id, data, actor)
    except Exception as e:
        return handle_error(e)


@router.delete(
    "/{bundle_id}",
    response_model=DeleteBundleResponse,
    summary="Delete a bundle"
)
def delete_bundle(bundle_id: int, actor: Actor = Depends(get_actor)):
    """
    Raises:
        400: Bundle locked by a loading transaction or production scan
        404: Bundle not found
    """
    try:
        return get_bundle_service().delete(bundle_id, actor)
    except Exception as e:
        return handle_error(e)
