"""
Cutting ledger service.

Append-only record of cut pieces per order / lay / size. Recording the
same lay and size again adds to the existing entry; entries are never
reduced here.
"""

from typing import Optional
import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from config import get_session_factory, transaction, advisory_lock, DatabaseSession
from models.auth import Actor
from models.cutting import (
    CuttingCreate,
    CuttingEntryResponse,
    CuttingAvailability,
    CuttingSizeStat,
    CuttingStatsResponse,
)
from services.order_service import OrderService, get_order_service
from tables import CuttingEntry, Bundle
from exceptions import (
    AppError,
    CapacityExceededError,
    CuttingEntryNotFoundError,
    DatabaseError,
    PermissionDeniedError,
    ValidationError,
)
from utils.text_utils import normalize_size_label

logger = structlog.get_logger(__name__)


def cut_qty_by_size(session: Session, order_id: int) -> dict[str, int]:
    """Sum of cut pieces per normalized size for an order."""
    rows = session.execute(
        select(CuttingEntry.size, func.coalesce(func.sum(CuttingEntry.qty), 0))
        .where(CuttingEntry.order_id == order_id)
        .group_by(CuttingEntry.size)
    ).all()

    totals: dict[str, int] = {}
    for size, qty in rows:
        key = normalize_size_label(size)
        totals[key] = totals.get(key, 0) + int(qty)
    return totals


class CuttingService:
    """
    Cutting ledger business logic.

    Core methods:
    - record_cutting: Add one lay of cut pieces, capped by order quantity
    - cut_quantity / get_cut_qty_by_size: Totals consumed by bundling stats
    - get_entries_for_bundling: Entries that still have pieces to bundle
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

    def cut_quantity(self, order_id: int, size: str) -> int:
        """Total pieces cut for one order and size."""
        with DatabaseSession(self.session_factory, "cut_quantity") as session:
            return cut_qty_by_size(session, order_id).get(normalize_size_label(size), 0)

    def get_cut_qty_by_size(self, order_id: int) -> dict[str, int]:
        """Total pieces cut per size for an order, keyed by normalized size."""
        with DatabaseSession(self.session_factory, "cut_qty_by_size") as session:
            return cut_qty_by_size(session, order_id)

    def get_entry(self, cutting_id: int) -> CuttingEntryResponse:
        """
        Get a single cutting entry.

        Raises:
            CuttingEntryNotFoundError: If it doesn't exist
        """
        with DatabaseSession(self.session_factory, "get_cutting_entry") as session:
            entry = session.get(CuttingEntry, cutting_id)
            if entry is None:
                raise CuttingEntryNotFoundError(cutting_id)
            return CuttingEntryResponse.model_validate(entry)

    def get_entries(self, order_id: int) -> list[CuttingEntryResponse]:
        """All cutting entries for an order, by lay then size."""
        with DatabaseSession(self.session_factory, "get_cutting_entries") as session:
            entries = session.execute(
                select(CuttingEntry)
                .where(CuttingEntry.order_id == order_id)
                .order_by(CuttingEntry.lay_no, CuttingEntry.size, CuttingEntry.cutting_id)
            ).scalars().all()
            return [CuttingEntryResponse.model_validate(e) for e in entries]

    def get_entries_for_bundling(self, order_id: int, size: str) -> list[CuttingAvailability]:
        """
        Cutting entries of one size that still have pieces to bundle.

        Returns:
            Entries with available_qty = cut - bundled > 0, by lay number
        """
        bundled = func.coalesce(func.sum(Bundle.qty), 0)

        with DatabaseSession(self.session_factory, "get_entries_for_bundling") as session:
            rows = session.execute(
                select(CuttingEntry, bundled.label("bundled_qty"))
                .outerjoin(Bundle, Bundle.cutting_id == CuttingEntry.cutting_id)
                .where(
                    CuttingEntry.order_id == order_id,
                    func.lower(CuttingEntry.size) == size.strip().lower(),
                )
                .group_by(CuttingEntry.cutting_id)
                .having(CuttingEntry.qty - bundled > 0)
                .order_by(CuttingEntry.lay_no)
            ).all()

        return [
            CuttingAvailability(
                cutting_id=entry.cutting_id,
                lay_no=entry.lay_no,
                style_id=entry.style_id,
                colour_code=entry.colour_code,
                size=entry.size,
                cutting_qty=entry.qty,
                bundled_qty=int(bundled_qty),
                available_qty=entry.qty - int(bundled_qty),
            )
            for entry, bundled_qty in rows
        ]

    def get_cutting_stats(self, order_id: int) -> CuttingStatsResponse:
        """Ordered vs cut pieces per declared size of the order."""
        order = self.orders.get_order(order_id)
        order_qty = self.orders.get_order_quantities(order_id)
        cut_qty = self.get_cut_qty_by_size(order_id)

        sizes = []
        for size in order.sizes:
            key = normalize_size_label(size)
            o_qty = order_qty.get(key, 0)
            c_qty = cut_qty.get(key, 0)
            sizes.append(CuttingSizeStat(
                size=size,
                order_qty=o_qty,
                cut_qty=c_qty,
                available_for_cutting=o_qty - c_qty,
            ))

        return CuttingStatsResponse(
            order_id=order.order_id,
            sizes=sizes,
            total_order_qty=sum(s.order_qty for s in sizes),
            total_cut_qty=sum(s.cut_qty for s in sizes),
        )

    # ===================
    # WRITE OPERATIONS
    # ===================

    def record_cutting(self, order_id: int, data: CuttingCreate, actor: Actor) -> CuttingStatsResponse:
        """
        Record one lay of cutting against an order.

        Args:
            order_id: Order being cut
            data: Lay number and pieces per size
            actor: Must hold MANAGE_CUTTING or SYSTEM_ADMIN

        Returns:
            Updated cutting stats for the order

        Raises:
            PermissionDeniedError: Actor may not record cutting
            OrderNotFoundError: Unknown order
            ValidationError: Size not in the order's category
            CapacityExceededError: Cut total would pass the ordered quantity
        """
        if not actor.can_manage_cutting:
            raise PermissionDeniedError("Only cutting managers can record cutting")

        order = self.orders.get_order(order_id)
        order_qty = self.orders.get_order_quantities(order_id)

        # merge repeated sizes before checking limits
        requested: dict[str, int] = {}
        for item in data.cuttings:
            size = next(
                (s for s in order.sizes if normalize_size_label(s) == normalize_size_label(item.size)),
                None
            )
            if size is None:
                raise ValidationError(
                    f"Size {item.size} is not part of order {order_id}",
                    code="UNKNOWN_SIZE",
                    details={"size": item.size, "sizes": order.sizes}
                )
            requested[size] = requested.get(size, 0) + item.qty

        logger.info(
            "recording_cutting",
            order_id=order_id,
            lay_no=data.lay_no,
            sizes=requested,
            actor=actor.user_id
        )

        try:
            with transaction(self.session_factory, "record_cutting") as session:
                advisory_lock(session, "cutting", order.style_id, order.colour_code)
                already_cut = cut_qty_by_size(session, order_id)

                for size, qty in requested.items():
                    key = normalize_size_label(size)
                    ordered = order_qty.get(key, 0)
                    current = already_cut.get(key, 0)
                    if current + qty > ordered:
                        raise CapacityExceededError(
                            requested=qty,
                            available=ordered - current,
                            details={"size": size, "order_qty": ordered, "cut_qty": current}
                        )

                    if qty == 0:
                        continue

                    entry = session.execute(
                        select(CuttingEntry)
                        .where(
                            CuttingEntry.style_id == order.style_id,
                            CuttingEntry.colour_code == order.colour_code,
                            CuttingEntry.lay_no == data.lay_no,
                            CuttingEntry.size == size,
                        )
                        .with_for_update()
                    ).scalar_one_or_none()

                    if entry is None:
                        session.add(CuttingEntry(
                            order_id=order.order_id,
                            lay_no=data.lay_no,
                            style_id=order.style_id,
                            colour_code=order.colour_code,
                            size=size,
                            qty=qty,
                            created_by=actor.user_id,
                        ))
                    elif entry.order_id != order.order_id:
                        raise ValidationError(
                            f"Lay {data.lay_no} for size {size} already belongs to order {entry.order_id}",
                            code="LAY_BELONGS_TO_OTHER_ORDER",
                            details={"cutting_id": entry.cutting_id, "order_id": entry.order_id}
                        )
                    else:
                        entry.qty += qty

        except AppError:
            raise
        except SQLAlchemyError as e:
            logger.error("record_cutting_failed", order_id=order_id, error=str(e))
            raise DatabaseError("insert", str(e))

        logger.info("cutting_recorded", order_id=order_id, lay_no=data.lay_no)
        return self.get_cutting_stats(order_id)


# Singleton instance
_cutting_service: Optional[CuttingService] = None


def get_cutting_service() -> CuttingService:
    """Get or create CuttingService instance."""
    global _cutting_service
    if _cutting_service is None:
        _cutting_service = CuttingService()
    return _cutting_service
