"""
Cutting ledger rows: pieces cut per order / lay / size.
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from tables.base import Base, utcnow


class CuttingEntry(Base):
    __tablename__ = "cutting"

    cutting_id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, nullable=False, index=True)
    lay_no = Column(Integer, nullable=False, default=1)
    style_id = Column(String(64), nullable=False)
    colour_code = Column(String(64), nullable=False)
    size = Column(String(32), nullable=False)
    qty = Column(Integer, nullable=False, default=0)
    created_by = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    bundles = relationship("Bundle", back_populates="cutting_entry")

    __table_args__ = (
        UniqueConstraint("style_id", "colour_code", "lay_no", "size", name="uq_cutting_style_colour_lay_size"),
        CheckConstraint("qty >= 0", name="ck_cutting_qty_non_negative"),
        Index("ix_cutting_style_colour", "style_id", "colour_code"),
    )

    def __repr__(self) -> str:
        return f"<CuttingEntry {self.cutting_id} order={self.order_id} lay={self.lay_no} {self.size}x{self.qty}>"
