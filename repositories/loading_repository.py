"""
Loading transaction queries.

All loading rows share one table tagged with size_category_id. A
LoadingRepository is scoped to one category so callers addressing a
transaction by (loading_id, category) can never touch another
category's row. Cross-category reads (line history, dashboard,
recommendation progress) are module functions.
"""

from typing import Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session, selectinload

from tables import Bundle, CuttingEntry, LoadingSizeQuantity, LoadingTransaction
from models.loading import LoadingStatus, RecommendationCandidate


def _with_children(query):
    return query.options(
        selectinload(LoadingTransaction.quantities),
        selectinload(LoadingTransaction.bundles),
    )


class LoadingRepository:
    """Reads and writes loading transactions of one size category."""

    def __init__(self, session: Session, size_category_id: int):
        self.session = session
        self.size_category_id = size_category_id

    def get(self, loading_id: int, for_update: bool = False) -> Optional[LoadingTransaction]:
        query = select(LoadingTransaction).where(
            LoadingTransaction.loading_id == loading_id,
            LoadingTransaction.size_category_id == self.size_category_id,
        )
        if for_update:
            query = query.with_for_update()
        return self.session.execute(_with_children(query)).scalar_one_or_none()

    def insert(
        self,
        order_id: int,
        line_no: int,
        style_id: Optional[str],
        colour_code: Optional[str],
        created_by: str,
        quantities: dict[str, int]
    ) -> LoadingTransaction:
        tx = LoadingTransaction(
            size_category_id=self.size_category_id,
            order_id=order_id,
            line_no=line_no,
            style_id=style_id,
            colour_code=colour_code,
            created_by=created_by,
            approved_status=LoadingStatus.PENDING_APPROVAL.value,
        )
        tx.quantities = [LoadingSizeQuantity(size=size, qty=qty) for size, qty in quantities.items()]
        self.session.add(tx)
        self.session.flush()
        return tx

    def lock_bundles(self, bundle_ids: list[int]) -> dict[int, tuple[Bundle, CuttingEntry]]:
        """Row-lock the selected bundles, keyed by id, with their cutting entry."""
        if not bundle_ids:
            return {}
        rows = self.session.execute(
            select(Bundle, CuttingEntry)
            .join(CuttingEntry, Bundle.cutting_id == CuttingEntry.cutting_id)
            .where(Bundle.bundle_id.in_(bundle_ids))
            .order_by(Bundle.bundle_id)
            .with_for_update(of=Bundle)
        ).all()
        return {bundle.bundle_id: (bundle, entry) for bundle, entry in rows}

    def stamp_bundle(
        self,
        bundle: Bundle,
        tx: LoadingTransaction,
        minus_qty: int,
        minus_reason: Optional[str]
    ) -> None:
        bundle.loading_transaction = tx
        bundle.loading_tx_id = tx.loading_id
        bundle.size_category_id = self.size_category_id
        bundle.minus_qty = minus_qty
        bundle.minus_reason = minus_reason
        bundle.final_qty = max(0, bundle.qty - minus_qty)

    def release_bundles(self, tx: LoadingTransaction) -> list[int]:
        """Return every bundle stamped by tx to the available pool."""
        bundles = self.session.execute(
            select(Bundle)
            .where(Bundle.loading_tx_id == tx.loading_id)
            .order_by(Bundle.bundle_id)
            .with_for_update()
        ).scalars().all()

        for bundle in bundles:
            bundle.loading_tx_id = None
            bundle.size_category_id = None
            bundle.minus_qty = 0
            bundle.minus_reason = None
            bundle.final_qty = None

        self.session.flush()
        return [b.bundle_id for b in bundles]

    def delete(self, tx: LoadingTransaction) -> None:
        self.session.delete(tx)
        self.session.flush()


# ===================
# CROSS-CATEGORY READS
# ===================

def completed_condition():
    """COMPLETED, or legacy rows left APPROVED after handover was recorded."""
    return or_(
        LoadingTransaction.approved_status == LoadingStatus.COMPLETED.value,
        and_(
            LoadingTransaction.approved_status == LoadingStatus.APPROVED.value,
            LoadingTransaction.handover_by.isnot(None),
        ),
    )


def pending_condition():
    return or_(
        LoadingTransaction.approved_status.is_(None),
        LoadingTransaction.approved_status == LoadingStatus.PENDING_APPROVAL.value,
    )


def pending_handover_condition():
    return and_(
        LoadingTransaction.approved_status == LoadingStatus.APPROVED.value,
        LoadingTransaction.handover_by.is_(None),
    )


def last_completed_on_line(session: Session, line_no: int) -> Optional[LoadingTransaction]:
    """Most recent completed loading on a line, by handover date."""
    query = (
        select(LoadingTransaction)
        .where(LoadingTransaction.line_no == line_no, completed_condition())
        .order_by(LoadingTransaction.handover_date.desc(), LoadingTransaction.loading_id.desc())
        .limit(1)
    )
    return session.execute(_with_children(query)).scalar_one_or_none()


def list_transactions(session: Session, condition) -> list[LoadingTransaction]:
    """Transactions across all categories matching condition, newest first."""
    query = (
        select(LoadingTransaction)
        .where(condition)
        .order_by(LoadingTransaction.created_date.desc(), LoadingTransaction.loading_id.desc())
    )
    return list(session.execute(_with_children(query)).scalars().all())


def order_progress(
    session: Session,
    style_id: Optional[str] = None,
    colour_code: Optional[str] = None,
    order_id: Optional[int] = None,
    exclude_order_id: Optional[int] = None
) -> list[RecommendationCandidate]:
    """
    Cut vs loaded pieces per order, oldest order first.

    Loaded pieces are the qty of bundles stamped by any loading
    transaction. Orders with nothing left to load are kept; callers
    filter on remaining.
    """
    conditions = []
    if style_id is not None:
        conditions.append(CuttingEntry.style_id == style_id)
    if colour_code is not None:
        conditions.append(CuttingEntry.colour_code == colour_code)
    if order_id is not None:
        conditions.append(CuttingEntry.order_id == order_id)
    if exclude_order_id is not None:
        conditions.append(CuttingEntry.order_id != exclude_order_id)

    cut_rows = session.execute(
        select(
            CuttingEntry.order_id,
            CuttingEntry.style_id,
            CuttingEntry.colour_code,
            func.sum(CuttingEntry.qty),
        )
        .where(*conditions)
        .group_by(CuttingEntry.order_id, CuttingEntry.style_id, CuttingEntry.colour_code)
        .order_by(CuttingEntry.order_id)
    ).all()

    loaded_rows = session.execute(
        select(CuttingEntry.order_id, func.sum(Bundle.qty))
        .join(Bundle, Bundle.cutting_id == CuttingEntry.cutting_id)
        .where(Bundle.loading_tx_id.isnot(None), *conditions)
        .group_by(CuttingEntry.order_id)
    ).all()
    loaded = {oid: int(qty or 0) for oid, qty in loaded_rows}

    candidates = []
    for oid, style, colour, total_cut in cut_rows:
        total_cut = int(total_cut or 0)
        total_loaded = loaded.get(oid, 0)
        candidates.append(RecommendationCandidate(
            order_id=oid,
            style_id=style,
            colour_code=colour,
            total_cut=total_cut,
            total_loaded=total_loaded,
            remaining=total_cut - total_loaded,
        ))
    return candidates
