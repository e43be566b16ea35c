"""
Order-scoped production routes: cutting ledger and bundle progress.
"""

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from typing import Optional
import structlog

from models.auth import Actor
from models.base import PaginatedResponse
from models.bundle import BundleResponse, BundleStatsResponse
from models.cutting import (
    CuttingCreate,
    CuttingEntryResponse,
    CuttingAvailability,
    CuttingStatsResponse,
)
from routes.dependencies import get_actor
from services.bundle_service import get_bundle_service
from services.cutting_service import get_cutting_service
from services.order_service import get_order_service
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/orders", tags=["Orders"])


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
# ORDERS
# ===================

@router.get("/search", response_model=PaginatedResponse, summary="Search orders")
def search_orders(
    q: Optional[str] = Query(None, description="Style, PO, buyer or order id"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200, alias="pageSize"),
    actor: Actor = Depends(get_actor)
):
    try:
        orders, total = get_order_service().search_orders(q, page=page, page_size=page_size)
        return PaginatedResponse.create(data=orders, total=total, page=page, page_size=page_size)
    except Exception as e:
        return handle_error(e)


# ===================
# CUTTING
# ===================

@router.get(
    "/{order_id}/cutting",
    response_model=list[CuttingEntryResponse],
    summary="Cutting entries of an order"
)
def list_cutting(order_id: int, actor: Actor = Depends(get_actor)):
    try:
        return get_cutting_service().get_entries(order_id)
    except Exception as e:
        return handle_error(e)


@router.post(
    "/{order_id}/cutting",
    response_model=CuttingStatsResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record one lay of cutting"
)
def record_cutting(order_id: int, data: CuttingCreate, actor: Actor = Depends(get_actor)):
    """
    Add cut pieces for a lay. Repeating a lay/size adds to it.

    Raises:
        400: Unknown size or cut total above the ordered quantity
        403: Actor may not record cutting
        404: Order not found
    """
    try:
        return get_cutting_service().record_cutting(order_id, data, actor)
    except Exception as e:
        return handle_error(e)


# ===================
# BUNDLES
# ===================

@router.get(
    "/{order_id}/bundles/stats",
    response_model=BundleStatsResponse,
    summary="Cutting and bundling progress per size"
)
def bundle_stats(order_id: int, actor: Actor = Depends(get_actor)):
    try:
        return get_bundle_service().stats_by_size(order_id)
    except Exception as e:
        return handle_error(e)


@router.get(
    "/{order_id}/bundles/available/{size}",
    response_model=list[CuttingAvailability],
    summary="Cutting entries with pieces left to bundle"
)
def available_for_bundling(order_id: int, size: str, actor: Actor = Depends(get_actor)):
    try:
        return get_cutting_service().get_entries_for_bundling(order_id, size)
    except Exception as e:
        return handle_error(e)


@router.get(
    "/{order_id}/bundles",
    response_model=list[BundleResponse],
    summary="Bundles of an order"
)
def list_bundles(
    order_id: int,
    size: Optional[str] = Query(None),
    actor: Actor = Depends(get_actor)
):
    try:
        return get_bundle_service().get_by_order(order_id, size=size)
    except Exception as e:
        return handle_error(e)
