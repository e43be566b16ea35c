"""
Bundles of serial-numbered cut pieces and their downstream scan records.
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import relationship

from tables.base import Base, utcnow


class Bundle(Base):
    __tablename__ = "bundles"

    bundle_id = Column(Integer, primary_key=True, autoincrement=True)
    cutting_id = Column(Integer, ForeignKey("cutting.cutting_id", ondelete="RESTRICT"), nullable=False, index=True)
    style_id = Column(String(64), nullable=False)
    colour_code = Column(String(64), nullable=False)
    size = Column(String(32), nullable=False)
    qty = Column(Integer, nullable=False)
    starting_no = Column(Integer, nullable=False)
    ending_no = Column(Integer, nullable=False)

    # consumption link, set by a loading transaction
    loading_tx_id = Column(
        Integer,
        ForeignKey("loading_transactions.loading_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    size_category_id = Column(Integer, nullable=True)
    minus_qty = Column(Integer, nullable=False, default=0)
    minus_reason = Column(String(255), nullable=True)
    final_qty = Column(Integer, nullable=True)

    created_by = Column(String(64), nullable=True)
    last_changed_by = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=utcnow)

    cutting_entry = relationship("CuttingEntry", back_populates="bundles")
    loading_transaction = relationship("LoadingTransaction", back_populates="bundles")

    __table_args__ = (
        CheckConstraint("qty > 0", name="ck_bundle_qty_positive"),
        CheckConstraint("starting_no >= 1", name="ck_bundle_starting_no_positive"),
        CheckConstraint("ending_no - starting_no + 1 = qty", name="ck_bundle_range_matches_qty"),
        CheckConstraint("minus_qty >= 0", name="ck_bundle_minus_qty_non_negative"),
        Index("ix_bundles_style_colour_range", "style_id", "colour_code", "starting_no", "ending_no"),
    )

    @property
    def is_consumed(self) -> bool:
        return self.loading_tx_id is not None

    def __repr__(self) -> str:
        return f"<Bundle {self.bundle_id} {self.style_id}/{self.colour_code} {self.starting_no}-{self.ending_no}>"


class BundleOperationScan(Base):
    """Operation-wise tracking of a bundle on the sewing line."""

    __tablename__ = "bundle_tracking_op_wise"

    id = Column(Integer, primary_key=True, autoincrement=True)
    bundle_id = Column(Integer, ForeignKey("bundles.bundle_id", ondelete="RESTRICT"), nullable=False, index=True)
    operation_id = Column(Integer, nullable=True)
    emp_id = Column(String(64), nullable=True)
    qty = Column(Integer, nullable=False, default=0)
    scanned_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
