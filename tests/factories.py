"""
Test data factories.

Master-data factories return dicts shaped like the Supabase rows the
services read (nested joins included). Row helpers insert production
rows straight into the SQL test database.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from tables import Bundle, BundleOperationScan, CuttingEntry, LoadingSizeQuantity, LoadingTransaction


class SizeCategoryFactory:
    """
    Factory for size_categories rows.

    Usage:
        category = SizeCategoryFactory.create(size_category_name="MEN TOP", sizes="S,M,L")
    """

    _counter = 0

    @classmethod
    def _next_counter(cls) -> int:
        cls._counter += 1
        return cls._counter

    @classmethod
    def create(
        cls,
        size_category_id: Optional[int] = None,
        size_category_name: Optional[str] = None,
        sizes: str = "S,M,L,XL"
    ) -> dict:
        counter = cls._next_counter()
        return {
            "size_category_id": size_category_id or counter,
            "size_category_name": size_category_name or f"CATEGORY {counter}",
            "sizes": sizes,
        }


class OrderFactory:
    """
    Factory for orders rows with the embedded size category.

    Usage:
        order = OrderFactory.create(order_id=1001, category=category)
    """

    _counter = 1000

    @classmethod
    def _next_counter(cls) -> int:
        cls._counter += 1
        return cls._counter

    @classmethod
    def create(
        cls,
        order_id: Optional[int] = None,
        buyer: str = "ACME APPAREL",
        style_id: str = "ST-100",
        colour_code: str = "BLK",
        po: Optional[str] = None,
        category: Optional[dict] = None,
        status: str = "OPEN"
    ) -> dict:
        order_id = order_id or cls._next_counter()
        category = category or SizeCategoryFactory.create()
        return {
            "order_id": order_id,
            "buyer": buyer,
            "style_id": style_id,
            "colour_code": colour_code,
            "po": po or f"PO-{order_id}",
            "size_category": category["size_category_id"],
            "status": status,
            "size_categories": category,
        }


class EmployeeFactory:
    """
    Factory for employees rows with embedded department and designation.

    Usage:
        employee = EmployeeFactory.create(emp_id="E1", department_id=1, designation_level=6)
    """

    @classmethod
    def create(
        cls,
        emp_id: str = "E1",
        name: Optional[str] = None,
        department_id: int = 1,
        department_name: str = "Production",
        designation_id: Optional[int] = None,
        designation_name: Optional[str] = None,
        designation_level: int = 5,
        status: str = "ACTIVE"
    ) -> dict:
        return {
            "emp_id": emp_id,
            "name": name or f"Employee {emp_id}",
            "department_id": department_id,
            "designation_id": designation_id or designation_level,
            "status": status,
            "departments": {"department_name": department_name},
            "designations": {
                "designation_name": designation_name or f"Level {designation_level}",
                "designation_level": designation_level,
            },
        }


class LineFactory:
    """Factory for lines rows."""

    @classmethod
    def create(cls, line_no: int = 1, line_name: Optional[str] = None, status: str = "ACTIVE") -> dict:
        return {
            "line_no": line_no,
            "line_name": line_name or f"Line {line_no}",
            "status": status,
        }


# ===================
# SQL ROW HELPERS
# ===================

def add_cutting(
    session_factory,
    order_id: int = 1001,
    style_id: str = "ST-100",
    colour_code: str = "BLK",
    size: str = "M",
    qty: int = 100,
    lay_no: int = 1
) -> int:
    """Insert a cutting entry and return its id."""
    with session_factory() as session, session.begin():
        entry = CuttingEntry(
            order_id=order_id,
            lay_no=lay_no,
            style_id=style_id,
            colour_code=colour_code,
            size=size,
            qty=qty,
            created_by="seed",
        )
        session.add(entry)
        session.flush()
        return entry.cutting_id


def add_bundle(
    session_factory,
    cutting_id: int,
    starting_no: int,
    ending_no: int,
    loading_tx_id: Optional[int] = None
) -> int:
    """Insert a bundle copying style/colour/size from its cutting entry."""
    with session_factory() as session, session.begin():
        entry = session.get(CuttingEntry, cutting_id)
        bundle = Bundle(
            cutting_id=cutting_id,
            style_id=entry.style_id,
            colour_code=entry.colour_code,
            size=entry.size,
            qty=ending_no - starting_no + 1,
            starting_no=starting_no,
            ending_no=ending_no,
            minus_qty=0,
            loading_tx_id=loading_tx_id,
            created_by="seed",
        )
        session.add(bundle)
        session.flush()
        return bundle.bundle_id


def add_scan(session_factory, bundle_id: int, operation_id: int = 1) -> None:
    """Record a downstream operation scan for a bundle."""
    with session_factory() as session, session.begin():
        session.add(BundleOperationScan(bundle_id=bundle_id, operation_id=operation_id, emp_id="E1", qty=1))


def add_loading(
    session_factory,
    order_id: int = 1001,
    line_no: int = 1,
    size_category_id: int = 1,
    style_id: Optional[str] = "ST-100",
    colour_code: Optional[str] = "BLK",
    approved_status: Optional[str] = "COMPLETED",
    handover_by: Optional[str] = "E1",
    handover_days_ago: int = 1,
    quantities: Optional[dict] = None
) -> int:
    """Insert a loading transaction in any state and return its id."""
    now = datetime.now(timezone.utc)
    with session_factory() as session, session.begin():
        tx = LoadingTransaction(
            size_category_id=size_category_id,
            order_id=order_id,
            line_no=line_no,
            style_id=style_id,
            colour_code=colour_code,
            created_by="E1",
            created_date=now - timedelta(days=handover_days_ago + 1),
            approved_status=approved_status,
            handover_by=handover_by,
            handover_date=now - timedelta(days=handover_days_ago) if handover_by else None,
        )
        tx.quantities = [LoadingSizeQuantity(size=s, qty=q) for s, q in (quantities or {"M": 10}).items()]
        session.add(tx)
        session.flush()
        return tx.loading_id
