"""
Loading transaction API routes.

Supermarket-to-line loading: create, approve, reject and hand over.
"""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
import structlog

from models.auth import Actor
from models.bundle import BundleResponse
from models.master import EmployeeView, LineView
from models.loading import (
    LoadingTransactionCreate,
    LoadingTransactionResponse,
    ApproveRequest,
    RejectRequest,
    HandoverRequest,
    RejectResponse,
    RecommendationResponse,
    LoadingDashboardResponse,
)
from routes.dependencies import get_actor
from services.loading_service import get_loading_service
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/loading", tags=["Loading"])


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
# LOOKUPS
# ===================

@router.get("/dashboard", response_model=LoadingDashboardResponse, summary="Supermarket loading dashboard")
def dashboard(actor: Actor = Depends(get_actor)):
    """
    Completed, pending and awaiting-handover loadings across categories.

    Raises:
        403: Actor is not a Supermarket employee within the level limit
    """
    try:
        return get_loading_service().get_dashboard(actor)
    except Exception as e:
        return handle_error(e)


@router.get("/lines", response_model=list[LineView], summary="Active sewing lines")
def active_lines(actor: Actor = Depends(get_actor)):
    try:
        return get_loading_service().get_active_lines()
    except Exception as e:
        return handle_error(e)


@router.get("/bundles/{order_id}", response_model=list[BundleResponse], summary="Bundles available for loading")
def available_bundles(order_id: int, actor: Actor = Depends(get_actor)):
    try:
        return get_loading_service().get_available_bundles(order_id)
    except Exception as e:
        return handle_error(e)


@router.get("/verify-employee/{emp_id}", response_model=EmployeeView, summary="Verify an employee")
def verify_employee(emp_id: str, actor: Actor = Depends(get_actor)):
    """
    Raises:
        403: Employee inactive
        404: Employee not found
    """
    try:
        return get_loading_service().verify_employee(emp_id)
    except Exception as e:
        return handle_error(e)


@router.get(
    "/recommendation/{line_no}",
    response_model=RecommendationResponse,
    summary="Recommend the next order for a line"
)
def recommendation(line_no: int, actor: Actor = Depends(get_actor)):
    try:
        return get_loading_service().get_recommendation(line_no)
    except Exception as e:
        return handle_error(e)


# ===================
# TRANSACTIONS
# ===================

@router.post(
    "/transactions",
    response_model=LoadingTransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a loading transaction"
)
def create_transaction(data: LoadingTransactionCreate, actor: Actor = Depends(get_actor)):
    """
    Persist a pending loading and consume the selected bundles.

    Raises:
        400: Invalid quantities, bundle of another order, bundle already loaded
        403: Creator not Production or above the level limit
        404: Order, category, employee or bundle not found
    """
    try:
        return get_loading_service().create_transaction(data, actor)
    except Exception as e:
        return handle_error(e)


@router.post(
    "/transactions/{loading_id}/approve",
    response_model=LoadingTransactionResponse,
    summary="Approve a pending loading"
)
def approve(loading_id: int, data: ApproveRequest, actor: Actor = Depends(get_actor)):
    """
    Raises:
        403: Approver above the level limit or inactive
        404: Category or transaction not found
        409: Transaction is not pending approval
    """
    try:
        return get_loading_service().approve(loading_id, data.category_name, data.approver_id, actor)
    except Exception as e:
        return handle_error(e)


@router.post(
    "/transactions/{loading_id}/reject",
    response_model=RejectResponse,
    summary="Reject a pending loading"
)
def reject(loading_id: int, data: RejectRequest, actor: Actor = Depends(get_actor)):
    """
    Deletes the transaction and returns its bundles to the available pool.

    Raises:
        404: Category or transaction not found
        409: Transaction is not pending approval
    """
    try:
        return get_loading_service().reject(loading_id, data.category_name, actor)
    except Exception as e:
        return handle_error(e)


@router.post(
    "/transactions/{loading_id}/handover",
    response_model=LoadingTransactionResponse,
    summary="Hand an approved loading over to the line"
)
def handover(loading_id: int, data: HandoverRequest, actor: Actor = Depends(get_actor)):
    """
    Raises:
        403: Recipient not Production, above the level limit, or too junior to change style
        404: Category or transaction not found
        409: Transaction is not approved
    """
    try:
        return get_loading_service().handover(
            loading_id,
            data.category_name,
            data.handover_id,
            actor,
            variant_style_id=data.variant_style_id
        )
    except Exception as e:
        return handle_error(e)
