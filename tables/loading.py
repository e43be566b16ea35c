"""
Loading transactions, normalized across size categories.

One row per transaction tagged with its size_category_id; per-size
quantities live in loading_size_quantities.
"""

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from tables.base import Base, utcnow


class LoadingTransaction(Base):
    __tablename__ = "loading_transactions"

    loading_id = Column(Integer, primary_key=True, autoincrement=True)
    size_category_id = Column(Integer, nullable=False, index=True)
    order_id = Column(Integer, nullable=False, index=True)
    line_no = Column(Integer, nullable=False, index=True)
    style_id = Column(String(64), nullable=True)
    colour_code = Column(String(64), nullable=True)

    created_by = Column(String(64), nullable=False)
    created_date = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    approved_status = Column(String(32), nullable=True)
    approved_by = Column(String(64), nullable=True)
    approved_date = Column(DateTime(timezone=True), nullable=True)
    handover_by = Column(String(64), nullable=True)
    handover_date = Column(DateTime(timezone=True), nullable=True)
    handover_style_id = Column(String(64), nullable=True)

    quantities = relationship(
        "LoadingSizeQuantity",
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="LoadingSizeQuantity.id",
    )
    bundles = relationship("Bundle", back_populates="loading_transaction")

    __table_args__ = (
        Index("ix_loading_line_status", "line_no", "approved_status"),
    )

    @property
    def quantity_map(self) -> dict[str, int]:
        return {q.size: q.qty for q in self.quantities}

    def __repr__(self) -> str:
        return f"<LoadingTransaction {self.loading_id} order={self.order_id} line={self.line_no} {self.approved_status}>"


class LoadingSizeQuantity(Base):
    __tablename__ = "loading_size_quantities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    loading_id = Column(
        Integer,
        ForeignKey("loading_transactions.loading_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    size = Column(String(32), nullable=False)
    qty = Column(Integer, nullable=False, default=0)

    transaction = relationship("LoadingTransaction", back_populates="quantities")

    __table_args__ = (
        UniqueConstraint("loading_id", "size", name="uq_loading_size"),
    )
