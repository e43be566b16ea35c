"""
Loading transaction engine.

State machine for moving bundles from the supermarket to a sewing line:

    create (PENDING_APPROVAL) -> approve (APPROVED) -> handover (COMPLETED)
                              \\-> reject (row deleted, bundles released)

Creating a transaction stamps every selected bundle with its loading id,
which removes the bundle from the available pool. The row insert and the
bundle stamps commit together or not at all; rejection clears the stamps
and deletes the row in one transaction.
"""

from datetime import datetime, timezone
from typing import Optional
import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from config import get_session_factory, settings, transaction, DatabaseSession
from models.auth import Actor
from models.bundle import BundleResponse
from models.master import EmployeeView, LineView, OrderView, SizeCategory
from models.loading import (
    ALLOWED_TRANSITIONS,
    LoadingStatus,
    RecommendationTier,
    current_status,
    is_valid_transition,
    LoadingTransactionCreate,
    LoadingTransactionResponse,
    RejectResponse,
    RecommendationResponse,
    LoadingDashboardResponse,
)
from repositories import (
    LoadingRepository,
    last_completed_on_line,
    list_transactions,
    order_progress,
    completed_condition,
    pending_condition,
    pending_handover_condition,
)
from services.bundle_service import BundleService, get_bundle_service
from services.employee_service import EmployeeService, get_employee_service
from services.order_service import OrderService, get_order_service
from services.size_category_service import SizeCategoryService, get_size_category_service
from tables import LoadingTransaction
from exceptions import (
    AppError,
    BundleLockedError,
    BundleNotFoundError,
    DatabaseError,
    InvalidStateError,
    LoadingTransactionNotFoundError,
    PermissionDeniedError,
    ValidationError,
)

logger = structlog.get_logger(__name__)

NO_HISTORY_MESSAGE = "No prior loading found for this line. Manual selection required."


def _to_response(tx: LoadingTransaction, category_name: Optional[str] = None) -> LoadingTransactionResponse:
    return LoadingTransactionResponse(
        loading_id=tx.loading_id,
        size_category_id=tx.size_category_id,
        category_name=category_name,
        order_id=tx.order_id,
        line_no=tx.line_no,
        style_id=tx.style_id,
        colour_code=tx.colour_code,
        created_by=tx.created_by,
        created_date=tx.created_date,
        approved_status=tx.approved_status,
        approved_by=tx.approved_by,
        approved_date=tx.approved_date,
        handover_by=tx.handover_by,
        handover_date=tx.handover_date,
        handover_style_id=tx.handover_style_id,
        quantities=tx.quantity_map,
        bundle_ids=sorted(b.bundle_id for b in tx.bundles),
    )


class LoadingService:
    """
    Loading transaction business logic.

    Core methods:
    - create_transaction: Persist a pending loading and consume its bundles
    - approve / reject / handover: State transitions with seniority gates
    - get_recommendation: Suggest the next order for a line
    - get_dashboard: Supermarket read model
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        employees: Optional[EmployeeService] = None,
        categories: Optional[SizeCategoryService] = None,
        orders: Optional[OrderService] = None,
        bundles: Optional[BundleService] = None
    ):
        self.session_factory = session_factory or get_session_factory()
        self.employees = employees or get_employee_service()
        self.categories = categories or get_size_category_service()
        self.orders = orders or get_order_service()
        self.bundles = bundles or get_bundle_service()

    # ===================
    # LOOKUPS
    # ===================

    def verify_employee(self, emp_id: str) -> EmployeeView:
        """
        Raises:
            EmployeeNotFoundError: Unknown employee
            EmployeeInactiveError: Employee not ACTIVE
        """
        return self.employees.verify_employee(emp_id)

    def get_active_lines(self) -> list[LineView]:
        return self.orders.get_active_lines()

    def get_available_bundles(self, order_id: int) -> list[BundleResponse]:
        """Bundles of the order not yet consumed by a loading transaction."""
        return self.bundles.get_by_order(order_id, available_only=True)

    def search_orders(self, q: Optional[str] = None, page: int = 1, page_size: int = 50) -> tuple[list[OrderView], int]:
        return self.orders.search_orders(q, page=page, page_size=page_size)

    def get_transaction(self, loading_id: int, category_name: str) -> LoadingTransactionResponse:
        """
        Raises:
            SizeCategoryNotFoundError: Unknown category
            LoadingTransactionNotFoundError: No such loading in that category
        """
        category = self.categories.resolve(category_name)
        with DatabaseSession(self.session_factory, "get_loading_transaction") as session:
            tx = LoadingRepository(session, category.size_category_id).get(loading_id)
            if tx is None:
                raise LoadingTransactionNotFoundError(loading_id, category.name)
            return _to_response(tx, category.name)

    # ===================
    # RECOMMENDATION
    # ===================

    def get_recommendation(self, line_no: int) -> RecommendationResponse:
        """
        Suggest what to load next on a line.

        Starts from the line's most recent completed loading and searches,
        in order: the same order, other orders of the same style and
        colour, other orders of the same style. The first tier with an
        order that still has unloaded cut pieces wins.
        """
        with DatabaseSession(self.session_factory, "loading_recommendation") as session:
            last = last_completed_on_line(session, line_no)
            if last is None:
                logger.info("recommendation_no_history", line_no=line_no)
                return RecommendationResponse(has_history=False, message=NO_HISTORY_MESSAGE)

            last_response = _to_response(last)
            style_id, colour_code = last.style_id, last.colour_code
            if style_id is None or colour_code is None:
                order = self.orders.get_order(last.order_id)
                style_id, colour_code = order.style_id, order.colour_code

            tiers = [
                (RecommendationTier.SAME_ORDER, dict(order_id=last.order_id)),
                (RecommendationTier.SAME_STYLE_COLOUR, dict(
                    style_id=style_id, colour_code=colour_code, exclude_order_id=last.order_id
                )),
                (RecommendationTier.SAME_STYLE, dict(style_id=style_id, exclude_order_id=last.order_id)),
            ]

            for tier, filters in tiers:
                candidates = [c for c in order_progress(session, **filters) if c.remaining > 0]
                if candidates:
                    logger.info(
                        "recommendation_found",
                        line_no=line_no,
                        tier=tier.value,
                        order_id=candidates[0].order_id
                    )
                    return RecommendationResponse(
                        has_history=True,
                        last_loading=last_response,
                        tier=tier,
                        recommendation=candidates[0],
                    )

        logger.info("recommendation_none", line_no=line_no, last_order_id=last_response.order_id)
        return RecommendationResponse(
            has_history=True,
            message="No order with remaining cut pieces matches the last loading.",
            last_loading=last_response,
        )

    # ===================
    # STATE MACHINE
    # ===================

    def _require_level(self, employee: EmployeeView, level: int, action: str) -> None:
        if not employee.has_level_at_most(level):
            raise PermissionDeniedError(
                f"Designation level 1-{level} required to {action}",
                code="INSUFFICIENT_LEVEL",
                details={"emp_id": employee.emp_id, "designation_level": employee.designation_level}
            )

    def _require_production(self, employee: EmployeeView, action: str) -> None:
        if employee.department_id != settings.production_department_id:
            raise PermissionDeniedError(
                f"Only Production department employees can {action}",
                code="WRONG_DEPARTMENT",
                details={"emp_id": employee.emp_id, "department_id": employee.department_id}
            )

    def _locked_transaction(
        self,
        repo: LoadingRepository,
        loading_id: int,
        category: SizeCategory
    ) -> LoadingTransaction:
        tx = repo.get(loading_id, for_update=True)
        if tx is None:
            raise LoadingTransactionNotFoundError(loading_id, category.name)
        return tx

    def _check_transition(self, tx: LoadingTransaction, new: LoadingStatus, action: str) -> LoadingStatus:
        status = current_status(tx.approved_status)
        if not is_valid_transition(status, new):
            raise InvalidStateError(
                tx.loading_id,
                status.value,
                action,
                expected=[s.value for s, allowed in ALLOWED_TRANSITIONS.items() if new in allowed]
            )
        return status

    def create_transaction(self, data: LoadingTransactionCreate, actor: Actor) -> LoadingTransactionResponse:
        """
        Create a pending loading transaction and consume its bundles.

        Raises:
            EmployeeNotFoundError / EmployeeInactiveError: Creator unusable
            PermissionDeniedError: Creator not Production or level above limit
            OrderNotFoundError / SizeCategoryNotFoundError: Unknown order or category
            ValidationError: Bad quantities, bundle of another order, negative minus
            BundleNotFoundError: Selected bundle doesn't exist
            BundleLockedError: Selected bundle already consumed
        """
        creator = self.employees.verify_employee(data.employee_id)
        self._require_production(creator, "initiate loading transactions")
        self._require_level(creator, settings.max_loading_designation_level, "initiate loading transactions")

        order = self.orders.get_order(data.order_id)
        if order.size_category_id is None:
            raise ValidationError(
                f"Order {order.order_id} has no size category",
                code="ORDER_WITHOUT_CATEGORY",
                details={"order_id": order.order_id}
            )
        category = self.categories.get_by_id(order.size_category_id)
        quantities = self.categories.validate_quantities(category, data.quantities)

        bundle_ids = [sel.bundle_id for sel in data.bundles]
        if len(set(bundle_ids)) != len(bundle_ids):
            raise ValidationError(
                "A bundle can only be selected once",
                code="DUPLICATE_BUNDLE",
                details={"bundle_ids": bundle_ids}
            )
        for sel in data.bundles:
            if sel.minus_qty < 0:
                raise ValidationError(
                    f"Minus quantity for bundle {sel.bundle_id} cannot be negative",
                    code="INVALID_MINUS_QTY",
                    details={"bundle_id": sel.bundle_id, "minus_qty": sel.minus_qty}
                )

        logger.info(
            "creating_loading_transaction",
            order_id=order.order_id,
            line_no=data.line_no,
            category=category.name,
            bundles=len(bundle_ids),
            creator=creator.emp_id,
            actor=actor.user_id
        )

        try:
            with transaction(self.session_factory, "create_loading_transaction") as session:
                repo = LoadingRepository(session, category.size_category_id)
                tx = repo.insert(
                    order_id=order.order_id,
                    line_no=data.line_no,
                    style_id=order.style_id,
                    colour_code=order.colour_code,
                    created_by=creator.emp_id,
                    quantities=quantities,
                )

                locked = repo.lock_bundles(bundle_ids)
                for sel in data.bundles:
                    if sel.bundle_id not in locked:
                        raise BundleNotFoundError(sel.bundle_id)
                    bundle, entry = locked[sel.bundle_id]
                    if entry.order_id != order.order_id:
                        raise ValidationError(
                            f"Bundle {bundle.bundle_id} belongs to order {entry.order_id}",
                            code="BUNDLE_ORDER_MISMATCH",
                            details={"bundle_id": bundle.bundle_id, "order_id": entry.order_id}
                        )
                    if bundle.is_consumed:
                        raise BundleLockedError(
                            bundle.bundle_id,
                            f"already loaded by transaction {bundle.loading_tx_id}"
                        )
                    repo.stamp_bundle(bundle, tx, sel.minus_qty, sel.reason)

                session.flush()
                response = _to_response(tx, category.name)

        except AppError:
            raise
        except SQLAlchemyError as e:
            logger.error("create_loading_transaction_failed", order_id=order.order_id, error=str(e))
            raise DatabaseError("insert", str(e))

        logger.info(
            "loading_transaction_created",
            loading_id=response.loading_id,
            category=category.name,
            bundle_ids=response.bundle_ids
        )
        return response

    def approve(
        self,
        loading_id: int,
        category_name: str,
        approver_id: str,
        actor: Actor
    ) -> LoadingTransactionResponse:
        """
        Approve a pending loading. Any department, level limit applies.

        Raises:
            PermissionDeniedError: Approver level above limit or inactive
            SizeCategoryNotFoundError / LoadingTransactionNotFoundError
            InvalidStateError: Not PENDING_APPROVAL
        """
        approver = self.employees.verify_employee(approver_id)
        self._require_level(approver, settings.max_loading_designation_level, "approve loading transactions")
        category = self.categories.resolve(category_name)

        try:
            with transaction(self.session_factory, "approve_loading_transaction") as session:
                repo = LoadingRepository(session, category.size_category_id)
                tx = self._locked_transaction(repo, loading_id, category)
                self._check_transition(tx, LoadingStatus.APPROVED, "approve")

                tx.approved_by = approver.emp_id
                tx.approved_status = LoadingStatus.APPROVED.value
                tx.approved_date = datetime.now(timezone.utc)
                session.flush()
                response = _to_response(tx, category.name)

        except AppError:
            raise
        except SQLAlchemyError as e:
            logger.error("approve_loading_transaction_failed", loading_id=loading_id, error=str(e))
            raise DatabaseError("update", str(e))

        logger.info(
            "loading_transaction_approved",
            loading_id=loading_id,
            category=category.name,
            approver=approver.emp_id,
            actor=actor.user_id
        )
        return response

    def reject(self, loading_id: int, category_name: str, actor: Actor) -> RejectResponse:
        """
        Reject a pending loading: release its bundles and delete the row.

        Raises:
            SizeCategoryNotFoundError / LoadingTransactionNotFoundError
            InvalidStateError: Not PENDING_APPROVAL
        """
        category = self.categories.resolve(category_name)

        try:
            with transaction(self.session_factory, "reject_loading_transaction") as session:
                repo = LoadingRepository(session, category.size_category_id)
                tx = self._locked_transaction(repo, loading_id, category)
                status = current_status(tx.approved_status)
                if status != LoadingStatus.PENDING_APPROVAL:
                    raise InvalidStateError(
                        loading_id,
                        status.value,
                        "reject",
                        expected=[LoadingStatus.PENDING_APPROVAL.value]
                    )

                released = repo.release_bundles(tx)
                repo.delete(tx)

        except AppError:
            raise
        except SQLAlchemyError as e:
            logger.error("reject_loading_transaction_failed", loading_id=loading_id, error=str(e))
            raise DatabaseError("delete", str(e))

        logger.info(
            "loading_transaction_rejected",
            loading_id=loading_id,
            category=category.name,
            released_bundle_ids=released,
            actor=actor.user_id
        )
        return RejectResponse(
            loading_id=loading_id,
            released_bundle_ids=released,
            message="Loading transaction rejected and bundles released",
        )

    def handover(
        self,
        loading_id: int,
        category_name: str,
        handover_id: str,
        actor: Actor,
        variant_style_id: Optional[str] = None
    ) -> LoadingTransactionResponse:
        """
        Record handover to the line and complete the loading.

        A substitute style differing from the loaded one needs a more
        senior recipient.

        Raises:
            PermissionDeniedError: Recipient not Production or level above limit
            SizeCategoryNotFoundError / LoadingTransactionNotFoundError
            InvalidStateError: Not APPROVED
        """
        recipient = self.employees.verify_employee(handover_id)
        self._require_production(recipient, "receive handovers")
        self._require_level(recipient, settings.max_loading_designation_level, "receive handovers")
        category = self.categories.resolve(category_name)
        variant = (variant_style_id or "").strip() or None

        try:
            with transaction(self.session_factory, "handover_loading_transaction") as session:
                repo = LoadingRepository(session, category.size_category_id)
                tx = self._locked_transaction(repo, loading_id, category)
                self._check_transition(tx, LoadingStatus.COMPLETED, "handover")

                if variant and variant != tx.style_id:
                    self._require_level(
                        recipient,
                        settings.max_style_change_designation_level,
                        "change the style at handover"
                    )

                tx.handover_by = recipient.emp_id
                tx.handover_date = datetime.now(timezone.utc)
                tx.handover_style_id = variant or tx.style_id
                tx.approved_status = LoadingStatus.COMPLETED.value
                session.flush()
                response = _to_response(tx, category.name)

        except AppError:
            raise
        except SQLAlchemyError as e:
            logger.error("handover_loading_transaction_failed", loading_id=loading_id, error=str(e))
            raise DatabaseError("update", str(e))

        logger.info(
            "loading_transaction_handed_over",
            loading_id=loading_id,
            category=category.name,
            recipient=recipient.emp_id,
            style_changed=bool(variant and variant != response.style_id),
            actor=actor.user_id
        )
        return response

    # ===================
    # DASHBOARD
    # ===================

    def get_dashboard(self, actor: Actor) -> LoadingDashboardResponse:
        """
        Supermarket view of all loadings across categories.

        Raises:
            PermissionDeniedError: Actor not a Supermarket employee within level limit
        """
        if not actor.employee_id:
            raise PermissionDeniedError("Dashboard requires a linked employee", code="NO_EMPLOYEE")

        employee = self.employees.verify_employee(actor.employee_id)
        if employee.department_id != settings.supermarket_department_id:
            raise PermissionDeniedError(
                "Only Supermarket department employees can view the loading dashboard",
                code="WRONG_DEPARTMENT",
                details={"emp_id": employee.emp_id, "department_id": employee.department_id}
            )
        self._require_level(employee, settings.max_loading_designation_level, "view the loading dashboard")

        names = {c.size_category_id: c.name for c in self.categories.list_categories()}

        with DatabaseSession(self.session_factory, "loading_dashboard") as session:
            def rows(condition):
                return [_to_response(tx, names.get(tx.size_category_id)) for tx in list_transactions(session, condition)]

            return LoadingDashboardResponse(
                transactions=rows(completed_condition()),
                pending=rows(pending_condition()),
                pending_handover=rows(pending_handover_condition()),
            )


# Singleton instance
_loading_service: Optional[LoadingService] = None


def get_loading_service() -> LoadingService:
    """Get or create LoadingService instance."""
    global _loading_service
    if _loading_service is None:
        _loading_service = LoadingService()
    return _loading_service
