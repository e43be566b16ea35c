"""
Order and line directory.

Orders, their per-size quantities and sewing lines are master data
maintained by the IT and IE modules; this service only reads them.
"""

from typing import Optional
import structlog

from config import get_supabase_client
from models.master import OrderView, LineView
from exceptions import OrderNotFoundError, DatabaseError
from utils.text_utils import normalize_size_label, parse_size_list

logger = structlog.get_logger(__name__)

ORDER_SELECT = "*, size_categories(size_category_id, size_category_name, sizes)"


def _to_order(row: dict) -> OrderView:
    category = row.get("size_categories") or {}
    return OrderView(
        order_id=int(row["order_id"]),
        buyer=row.get("buyer"),
        style_id=row["style_id"],
        colour_code=row["colour_code"],
        po=row.get("po"),
        size_category_id=category.get("size_category_id", row.get("size_category")),
        size_category_name=category.get("size_category_name"),
        sizes=parse_size_list(category.get("sizes")),
        status=row.get("status"),
    )


class OrderService:
    """Read access to orders, order quantities and lines."""

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "orders"
        self.quantities_table = "order_size_quantities"
        self.lines_table = "lines"

    # ===================
    # ORDERS
    # ===================

    def get_order(self, order_id: int) -> OrderView:
        """
        Get an order with its size category.

        Raises:
            OrderNotFoundError: If order doesn't exist
        """
        logger.debug("getting_order", order_id=order_id)

        try:
            result = (
                self.db.table(self.table)
                .select(ORDER_SELECT)
                .eq("order_id", int(order_id))
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("get_order_failed", order_id=order_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise OrderNotFoundError(order_id)

        return _to_order(result.data[0])

    def get_orders(self, order_ids: list[int]) -> dict[int, OrderView]:
        """Get several orders keyed by id. Missing ids are left out."""
        ids = sorted({int(i) for i in order_ids})
        if not ids:
            return {}

        try:
            result = (
                self.db.table(self.table)
                .select(ORDER_SELECT)
                .in_("order_id", ids)
                .execute()
            )
        except Exception as e:
            logger.error("get_orders_failed", count=len(ids), error=str(e))
            raise DatabaseError("select", str(e))

        orders = [_to_order(row) for row in result.data]
        return {order.order_id: order for order in orders}

    def get_order_quantities(self, order_id: int) -> dict[str, int]:
        """
        Ordered pieces per size.

        Returns:
            Map of normalized size label to quantity
        """
        try:
            result = (
                self.db.table(self.quantities_table)
                .select("size, qty")
                .eq("order_id", int(order_id))
                .execute()
            )
        except Exception as e:
            logger.error("get_order_quantities_failed", order_id=order_id, error=str(e))
            raise DatabaseError("select", str(e))

        quantities: dict[str, int] = {}
        for row in result.data:
            key = normalize_size_label(row["size"])
            quantities[key] = quantities.get(key, 0) + int(row.get("qty") or 0)
        return quantities

    def search_orders(
        self,
        q: Optional[str] = None,
        page: int = 1,
        page_size: int = 50
    ) -> tuple[list[OrderView], int]:
        """
        Search orders by style, PO, buyer or order id.

        Numeric search terms match the order id exactly.

        Returns:
            Tuple of (orders list, total count)
        """
        logger.info("searching_orders", q=q, page=page, page_size=page_size)

        try:
            query = self.db.table(self.table).select(ORDER_SELECT, count="exact")

            if q:
                term = q.strip()
                if term.isdigit():
                    query = query.eq("order_id", int(term))
                else:
                    query = query.or_(
                        f"style_id.ilike.%{term}%,po.ilike.%{term}%,buyer.ilike.%{term}%"
                    )

            offset = (page - 1) * page_size
            query = query.order("order_id", desc=True).range(offset, offset + page_size - 1)
            result = query.execute()
        except Exception as e:
            logger.error("search_orders_failed", q=q, error=str(e))
            raise DatabaseError("select", str(e))

        orders = [_to_order(row) for row in result.data]
        return orders, result.count or 0

    # ===================
    # LINES
    # ===================

    def get_active_lines(self) -> list[LineView]:
        """Sewing lines with status ACTIVE, by line number."""
        try:
            result = (
                self.db.table(self.lines_table)
                .select("line_no, line_name, status")
                .eq("status", "ACTIVE")
                .order("line_no")
                .execute()
            )
        except Exception as e:
            logger.error("get_active_lines_failed", error=str(e))
            raise DatabaseError("select", str(e))

        return [
            LineView(line_no=int(row["line_no"]), line_name=row.get("line_name"), status=row.get("status"))
            for row in result.data
        ]


# Singleton instance
_order_service: Optional[OrderService] = None


def get_order_service() -> OrderService:
    """Get or create OrderService instance."""
    global _order_service
    if _order_service is None:
        _order_service = OrderService()
    return _order_service
