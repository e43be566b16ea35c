"""
Bundle allocator.

Splits cut pieces into serial-numbered bundles. Two resources are
contended and both are guarded inside the writing transaction:

    - the serial-number space per (style_id, colour_code): closed ranges
      [starting_no, ending_no] never overlap
    - the cut-quantity pool per cutting entry: sum of bundle qty never
      exceeds the entry's qty

On PostgreSQL the serial space is serialized with an advisory lock keyed
by style/colour and the pool with a row lock on the cutting entry, so two
concurrent creates cannot both validate against the pre-write snapshot.
"""

from typing import Optional
import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from config import get_session_factory, settings, transaction, advisory_lock, DatabaseSession
from models.auth import Actor
from models.bundle import (
    BundleCreate,
    BundleUpdate,
    BundleResponse,
    BundleStatsResponse,
    SizeBundleStats,
    DeleteBundleResponse,
)
from services.cutting_service import cut_qty_by_size
from services.order_service import OrderService, get_order_service
from tables import Bundle, BundleOperationScan, CuttingEntry
from exceptions import (
    AppError,
    BundleLockedError,
    BundleNotFoundError,
    CapacityExceededError,
    CuttingEntryNotFoundError,
    DatabaseError,
    PermissionDeniedError,
    RangeConflictError,
    ValidationError,
)
from utils.text_utils import normalize_size_label

logger = structlog.get_logger(__name__)


def ranges_overlap(a: int, b: int, c: int, d: int) -> bool:
    """Closed intervals [a, b] and [c, d] share at least one serial."""
    return a <= d and c <= b


def percentage(part: int, whole: int) -> float:
    if whole <= 0:
        return 0.0
    return round(part / whole * 100, 2)


def completion_status(pct: float) -> str:
    return "COMPLETE" if pct == 100 else f"NOT COMPLETE ({pct:g}%)"


def _validate_range(qty: int, starting_no: int, ending_no: int) -> None:
    if starting_no < 1 or ending_no < starting_no:
        raise ValidationError(
            f"Invalid piece range {starting_no}-{ending_no}",
            code="INVALID_RANGE",
            details={"starting_no": starting_no, "ending_no": ending_no}
        )
    calculated = ending_no - starting_no + 1
    if calculated != qty:
        raise ValidationError(
            f"Bundle quantity ({qty}) does not match piece range "
            f"({starting_no}-{ending_no} = {calculated})",
            code="QTY_RANGE_MISMATCH",
            details={"qty": qty, "starting_no": starting_no, "ending_no": ending_no, "range_qty": calculated}
        )


def _bundled_qty(session: Session, cutting_id: int, exclude_bundle_id: Optional[int] = None) -> int:
    query = select(func.coalesce(func.sum(Bundle.qty), 0)).where(Bundle.cutting_id == cutting_id)
    if exclude_bundle_id is not None:
        query = query.where(Bundle.bundle_id != exclude_bundle_id)
    return int(session.execute(query).scalar_one())


def _find_overlaps(
    session: Session,
    style_id: str,
    colour_code: str,
    starting_no: int,
    ending_no: int,
    exclude_bundle_id: Optional[int] = None
) -> list[dict]:
    query = select(Bundle.bundle_id, Bundle.starting_no, Bundle.ending_no).where(
        Bundle.style_id == style_id,
        Bundle.colour_code == colour_code,
        Bundle.starting_no <= ending_no,
        Bundle.ending_no >= starting_no,
    )
    if exclude_bundle_id is not None:
        query = query.where(Bundle.bundle_id != exclude_bundle_id)

    return [
        {"bundle_id": bundle_id, "starting_no": start, "ending_no": end}
        for bundle_id, start, end in session.execute(query.order_by(Bundle.starting_no)).all()
    ]


def _is_used_downstream(session: Session, bundle_id: int) -> bool:
    count = session.execute(
        select(func.count(BundleOperationScan.id)).where(BundleOperationScan.bundle_id == bundle_id)
    ).scalar_one()
    return count > 0


def _to_response(bundle: Bundle, entry: Optional[CuttingEntry] = None) -> BundleResponse:
    response = BundleResponse.model_validate(bundle)
    entry = entry or bundle.cutting_entry
    if entry is not None:
        response = response.model_copy(update={"order_id": entry.order_id, "lay_no": entry.lay_no})
    return response


class BundleService:
    """
    Bundle allocation business logic.

    Core methods:
    - create / update / delete: Serial-range and capacity checked writes
    - next_starting_number: Seed for the next bundle of a style/colour
    - stats_by_size: Order vs cut vs bundled per size
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        orders: Optional[OrderService] = None
    ):
        self.session_factory = session_factory or get_session_factory()
        self.orders = orders or get_order_service()

    # ===================
    # READ OPERATIONS
    # ===================

    def get_by_id(self, bundle_id: int) -> BundleResponse:
        """
        Get a single bundle.

        Raises:
            BundleNotFoundError: If bundle doesn't exist
        """
        with DatabaseSession(self.session_factory, "get_bundle") as session:
            bundle = session.get(Bundle, bundle_id)
            if bundle is None:
                raise BundleNotFoundError(bundle_id)
            return _to_response(bundle)

    def get_by_order(
        self,
        order_id: int,
        size: Optional[str] = None,
        available_only: bool = False
    ) -> list[BundleResponse]:
        """
        Bundles cut for an order.

        Args:
            order_id: Order id
            size: Optional size filter (case-insensitive)
            available_only: Only bundles not consumed by a loading transaction
        """
        query = (
            select(Bundle, CuttingEntry)
            .join(CuttingEntry, Bundle.cutting_id == CuttingEntry.cutting_id)
            .where(CuttingEntry.order_id == order_id)
        )
        if size:
            query = query.where(func.lower(Bundle.size) == size.strip().lower())
        if available_only:
            query = query.where(Bundle.loading_tx_id.is_(None))

        with DatabaseSession(self.session_factory, "get_bundles_by_order") as session:
            rows = session.execute(query.order_by(Bundle.size, Bundle.starting_no)).all()
            return [_to_response(bundle, entry) for bundle, entry in rows]

    def get_records(
        self,
        style_id: Optional[str] = None,
        order_id: Optional[int] = None
    ) -> list[BundleResponse]:
        """Bundle journal, newest first, capped at settings.bundle_records_limit."""
        query = select(Bundle, CuttingEntry).join(CuttingEntry, Bundle.cutting_id == CuttingEntry.cutting_id)
        if style_id:
            query = query.where(Bundle.style_id.ilike(f"%{style_id}%"))
        if order_id:
            query = query.where(CuttingEntry.order_id == order_id)

        query = query.order_by(Bundle.created_at.desc(), Bundle.bundle_id.desc()).limit(settings.bundle_records_limit)

        with DatabaseSession(self.session_factory, "get_bundle_records") as session:
            return [_to_response(bundle, entry) for bundle, entry in session.execute(query).all()]

    def next_starting_number(self, style_id: str, colour_code: str) -> int:
        """Highest ending_no for the style/colour plus one, or 1 when none exist."""
        with DatabaseSession(self.session_factory, "next_starting_number") as session:
            highest = session.execute(
                select(func.max(Bundle.ending_no)).where(
                    Bundle.style_id == style_id,
                    Bundle.colour_code == colour_code,
                )
            ).scalar_one()
        return (highest or 0) + 1

    def stats_by_size(self, order_id: int) -> BundleStatsResponse:
        """
        Cutting and bundling progress per declared size of the order.

        Raises:
            OrderNotFoundError: Unknown order
        """
        order = self.orders.get_order(order_id)
        order_qty = self.orders.get_order_quantities(order_id)

        with DatabaseSession(self.session_factory, "bundle_stats") as session:
            cut_qty = cut_qty_by_size(session, order_id)
            rows = session.execute(
                select(Bundle.size, func.coalesce(func.sum(Bundle.qty), 0))
                .join(CuttingEntry, Bundle.cutting_id == CuttingEntry.cutting_id)
                .where(CuttingEntry.order_id == order_id)
                .group_by(Bundle.size)
            ).all()

        bundled_qty: dict[str, int] = {}
        for size, qty in rows:
            key = normalize_size_label(size)
            bundled_qty[key] = bundled_qty.get(key, 0) + int(qty)

        sizes = []
        for size in order.sizes:
            key = normalize_size_label(size)
            o_qty = order_qty.get(key, 0)
            c_qty = cut_qty.get(key, 0)
            b_qty = bundled_qty.get(key, 0)
            cutting_pct = percentage(c_qty, o_qty)
            bundling_pct = percentage(b_qty, c_qty)

            sizes.append(SizeBundleStats(
                size=size,
                order_qty=o_qty,
                cut_qty=c_qty,
                bundled_qty=b_qty,
                available_for_cutting=o_qty - c_qty,
                available_for_bundling=c_qty - b_qty,
                cutting_percentage=cutting_pct,
                bundling_percentage=bundling_pct,
                cutting_status=completion_status(cutting_pct),
                bundling_status=completion_status(bundling_pct),
            ))

        total_order = sum(s.order_qty for s in sizes)
        total_cut = sum(s.cut_qty for s in sizes)
        total_bundled = sum(s.bundled_qty for s in sizes)
        total_cutting_pct = percentage(total_cut, total_order)
        total_bundling_pct = percentage(total_bundled, total_cut)

        return BundleStatsResponse(
            order_id=order.order_id,
            buyer=order.buyer,
            style_id=order.style_id,
            colour_code=order.colour_code,
            sizes=sizes,
            total_order_qty=total_order,
            total_cut_qty=total_cut,
            total_bundled_qty=total_bundled,
            total_cutting_percentage=total_cutting_pct,
            total_bundling_percentage=total_bundling_pct,
            total_cutting_status=completion_status(total_cutting_pct),
            total_bundling_status=completion_status(total_bundling_pct),
        )

    # ===================
    # WRITE OPERATIONS
    # ===================

    def _check_permission(self, actor: Actor) -> None:
        if not actor.can_manage_cutting:
            raise PermissionDeniedError("Only cutting managers can manage bundles")

    def create(self, data: BundleCreate, actor: Actor) -> BundleResponse:
        """
        Create a bundle against a cutting entry.

        Validation order: range/qty consistency, cutting entry exists,
        serial overlap, remaining capacity.

        Raises:
            PermissionDeniedError: Actor may not manage bundles
            ValidationError: qty does not match the serial range
            CuttingEntryNotFoundError: Unknown cutting entry
            RangeConflictError: Range overlaps a bundle of the same style/colour
            CapacityExceededError: qty exceeds pieces left to bundle
        """
        self._check_permission(actor)
        _validate_range(data.qty, data.starting_no, data.ending_no)

        logger.info(
            "creating_bundle",
            cutting_id=data.cutting_id,
            qty=data.qty,
            starting_no=data.starting_no,
            ending_no=data.ending_no,
            actor=actor.user_id
        )

        try:
            with transaction(self.session_factory, "create_bundle") as session:
                entry = session.execute(
                    select(CuttingEntry)
                    .where(CuttingEntry.cutting_id == data.cutting_id)
                    .with_for_update()
                ).scalar_one_or_none()
                if entry is None:
                    raise CuttingEntryNotFoundError(data.cutting_id)

                advisory_lock(session, "bundle_serials", entry.style_id, entry.colour_code)

                conflicts = _find_overlaps(
                    session, entry.style_id, entry.colour_code, data.starting_no, data.ending_no
                )
                if conflicts:
                    logger.info("bundle_range_conflict", cutting_id=entry.cutting_id, conflicts=conflicts)
                    raise RangeConflictError(data.starting_no, data.ending_no, conflicts)

                available = entry.qty - _bundled_qty(session, entry.cutting_id)
                if data.qty > available:
                    logger.info("bundle_capacity_exceeded", cutting_id=entry.cutting_id, available=available)
                    raise CapacityExceededError(data.qty, available, {"cutting_id": entry.cutting_id})

                bundle = Bundle(
                    cutting_id=entry.cutting_id,
                    style_id=entry.style_id,
                    colour_code=entry.colour_code,
                    size=entry.size,
                    qty=data.qty,
                    starting_no=data.starting_no,
                    ending_no=data.ending_no,
                    minus_qty=0,
                    created_by=actor.user_id,
                    last_changed_by=actor.user_id,
                )
                session.add(bundle)
                session.flush()
                response = _to_response(bundle, entry)

        except AppError:
            raise
        except SQLAlchemyError as e:
            logger.error("create_bundle_failed", cutting_id=data.cutting_id, error=str(e))
            raise DatabaseError("insert", str(e))

        logger.info(
            "bundle_created",
            bundle_id=response.bundle_id,
            style_id=response.style_id,
            colour_code=response.colour_code,
            range=f"{response.starting_no}-{response.ending_no}"
        )
        return response

    def update(self, bundle_id: int, data: BundleUpdate, actor: Actor) -> BundleResponse:
        """
        Change the quantity and serial range of an unconsumed bundle.

        The overlap check ignores the bundle's own current range and the
        capacity check gives back its current qty.

        Raises:
            PermissionDeniedError: Actor may not manage bundles
            ValidationError: qty does not match the serial range
            BundleNotFoundError: Unknown bundle
            BundleLockedError: Bundle consumed by a loading or scanned downstream
            RangeConflictError: New range overlaps another bundle
            CapacityExceededError: New qty exceeds pieces left to bundle
        """
        self._check_permission(actor)
        _validate_range(data.qty, data.starting_no, data.ending_no)

        logger.info("updating_bundle", bundle_id=bundle_id, qty=data.qty, actor=actor.user_id)

        try:
            with transaction(self.session_factory, "update_bundle") as session:
                bundle = session.execute(
                    select(Bundle).where(Bundle.bundle_id == bundle_id).with_for_update()
                ).scalar_one_or_none()
                if bundle is None:
                    raise BundleNotFoundError(bundle_id)
                if bundle.is_consumed:
                    raise BundleLockedError(bundle_id, f"consumed by loading transaction {bundle.loading_tx_id}")
                if _is_used_downstream(session, bundle_id):
                    raise BundleLockedError(bundle_id, "already scanned or processed in production")

                entry = session.execute(
                    select(CuttingEntry)
                    .where(CuttingEntry.cutting_id == bundle.cutting_id)
                    .with_for_update()
                ).scalar_one()

                advisory_lock(session, "bundle_serials", bundle.style_id, bundle.colour_code)

                conflicts = _find_overlaps(
                    session,
                    bundle.style_id,
                    bundle.colour_code,
                    data.starting_no,
                    data.ending_no,
                    exclude_bundle_id=bundle_id,
                )
                if conflicts:
                    logger.info("bundle_range_conflict", bundle_id=bundle_id, conflicts=conflicts)
                    raise RangeConflictError(data.starting_no, data.ending_no, conflicts)

                available = entry.qty - _bundled_qty(session, entry.cutting_id, exclude_bundle_id=bundle_id)
                if data.qty > available:
                    raise CapacityExceededError(data.qty, available, {"cutting_id": entry.cutting_id})

                bundle.qty = data.qty
                bundle.starting_no = data.starting_no
                bundle.ending_no = data.ending_no
                bundle.last_changed_by = actor.user_id
                session.flush()
                response = _to_response(bundle, entry)

        except AppError:
            raise
        except SQLAlchemyError as e:
            logger.error("update_bundle_failed", bundle_id=bundle_id, error=str(e))
            raise DatabaseError("update", str(e))

        logger.info("bundle_updated", bundle_id=bundle_id)
        return response

    def delete(self, bundle_id: int, actor: Actor) -> DeleteBundleResponse:
        """
        Delete an unconsumed, unscanned bundle.

        Raises:
            PermissionDeniedError: Actor may not manage bundles
            BundleNotFoundError: Unknown bundle
            BundleLockedError: Bundle consumed by a loading or scanned downstream
        """
        self._check_permission(actor)

        logger.info("deleting_bundle", bundle_id=bundle_id, actor=actor.user_id)

        try:
            with transaction(self.session_factory, "delete_bundle") as session:
                bundle = session.execute(
                    select(Bundle).where(Bundle.bundle_id == bundle_id).with_for_update()
                ).scalar_one_or_none()
                if bundle is None:
                    raise BundleNotFoundError(bundle_id)
                if bundle.is_consumed:
                    raise BundleLockedError(bundle_id, f"consumed by loading transaction {bundle.loading_tx_id}")
                if _is_used_downstream(session, bundle_id):
                    raise BundleLockedError(bundle_id, "already scanned or processed in production")

                session.delete(bundle)

        except AppError:
            raise
        except SQLAlchemyError as e:
            logger.error("delete_bundle_failed", bundle_id=bundle_id, error=str(e))
            raise DatabaseError("delete", str(e))

        logger.info("bundle_deleted", bundle_id=bundle_id)
        return DeleteBundleResponse(bundle_id=bundle_id, message="Bundle deleted successfully")


# Singleton instance
_bundle_service: Optional[BundleService] = None


def get_bundle_service() -> BundleService:
    """Get or create BundleService instance."""
    global _bundle_service
    if _bundle_service is None:
        _bundle_service = BundleService()
    return _bundle_service
