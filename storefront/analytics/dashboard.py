"""
Sales Dashboard

Back-office sales and profit figures computed with Polars from the order
book and the current catalog. Only confirmed and delivered orders count as
sales; line profit uses the product's current cost price (0 when unknown).
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import polars as pl
import structlog

from storefront.catalog.repository import ProductRecord, ProductRepository
from storefront.config import get_settings
from storefront.database.models import FULFILLING_STATUSES, Order, OrderStatus, as_utc
from storefront.orders.store import OrderStore

logger = structlog.get_logger(__name__)

ORDER_SCHEMA = {
    "order_id": pl.Utf8,
    "status": pl.Utf8,
    "total_amount": pl.Float64,
    "created_at": pl.Datetime("us", "UTC"),
}
LINE_SCHEMA = {
    "order_id": pl.Utf8,
    "product_id": pl.Utf8,
    "price": pl.Float64,
    "quantity": pl.Int64,
}
PRODUCT_SCHEMA = {
    "product_id": pl.Utf8,
    "cost_price": pl.Float64,
    "stock": pl.Int64,
}

_FULFILLED = [s.value for s in FULFILLING_STATUSES]


@dataclass
class MonthlyPoint:
    month: int
    sales: float
    profit: float


@dataclass
class DashboardStats:
    total_sales: float = 0.0
    total_profit: float = 0.0
    profit_margin_percent: float = 0.0
    average_order_value: float = 0.0
    total_orders: int = 0
    pending_orders: int = 0
    confirmed_orders: int = 0
    delivered_orders: int = 0
    cancelled_orders: int = 0
    total_products: int = 0
    low_stock_products: int = 0
    month_sales: float = 0.0
    year_sales: float = 0.0
    monthly: List[MonthlyPoint] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# =============================================================================
# FRAME BUILDERS
# =============================================================================

def orders_frames(orders: Sequence[Order]):
    """(orders, lines) frames for a list of orders with their items"""
    order_rows = []
    line_rows = []
    for order in orders:
        order_rows.append({
            "order_id": str(order.id),
            "status": order.status.value,
            "total_amount": float(order.total_amount),
            "created_at": as_utc(order.created_at),
        })
        for item in order.items:
            line_rows.append({
                "order_id": str(order.id),
                "product_id": str(item.product_id) if item.product_id else None,
                "price": float(item.price),
                "quantity": item.quantity,
            })
    return pl.DataFrame(order_rows, schema=ORDER_SCHEMA), pl.DataFrame(line_rows, schema=LINE_SCHEMA)


def products_frame(products: Sequence[ProductRecord]) -> pl.DataFrame:
    return pl.DataFrame(
        [
            {
                "product_id": str(p.id),
                "cost_price": float(p.cost_price) if p.cost_price is not None else None,
                "stock": p.stock,
            }
            for p in products
        ],
        schema=PRODUCT_SCHEMA,
    )


def _total(df: pl.DataFrame, column: str) -> float:
    if df.is_empty():
        return 0.0
    return round(float(df[column].sum() or 0.0), 2)


# =============================================================================
# STATISTICS
# =============================================================================

def compute_sales_stats(
    orders: Sequence[Order],
    products: Sequence[ProductRecord],
    now: Optional[datetime] = None,
    low_stock_threshold: int = 10,
) -> DashboardStats:
    now = as_utc(now) if now else datetime.now(timezone.utc)
    orders_df, lines_df = orders_frames(orders)
    products_df = products_frame(products)

    fulfilled = orders_df.filter(pl.col("status").is_in(_FULFILLED))
    fulfilled_lines = (
        lines_df
        .join(fulfilled.select(["order_id", "created_at"]), on="order_id", how="inner")
        .join(products_df.select(["product_id", "cost_price"]), on="product_id", how="left")
        .with_columns(
            ((pl.col("price") - pl.col("cost_price").fill_null(0.0)) * pl.col("quantity"))
            .alias("profit")
        )
    )

    status_counts = {
        row["status"]: row["count"]
        for row in orders_df.group_by("status").agg(pl.len().alias("count")).to_dicts()
    }

    this_year = pl.col("created_at").dt.year() == now.year
    this_month = this_year & (pl.col("created_at").dt.month() == now.month)
    year_orders = fulfilled.filter(this_year)

    month_col = pl.col("created_at").dt.month().cast(pl.Int32).alias("month")
    sales_by_month = year_orders.group_by(month_col).agg(pl.col("total_amount").sum().alias("sales"))
    profit_by_month = (
        fulfilled_lines.filter(this_year)
        .group_by(month_col)
        .agg(pl.col("profit").sum().alias("profit"))
    )
    monthly = (
        pl.DataFrame({"month": list(range(1, 13))}, schema={"month": pl.Int32})
        .join(sales_by_month, on="month", how="left")
        .join(profit_by_month, on="month", how="left")
        .with_columns(pl.col("sales").fill_null(0.0), pl.col("profit").fill_null(0.0))
        .sort("month")
    )

    total_sales = _total(fulfilled, "total_amount")
    total_profit = _total(fulfilled_lines, "profit")
    total_orders = orders_df.height

    stats = DashboardStats(
        total_sales=total_sales,
        total_profit=total_profit,
        profit_margin_percent=round(total_profit / total_sales * 100, 1) if total_sales > 0 else 0.0,
        average_order_value=round(total_sales / total_orders, 2) if total_orders else 0.0,
        total_orders=total_orders,
        pending_orders=status_counts.get(OrderStatus.PENDING.value, 0),
        confirmed_orders=status_counts.get(OrderStatus.CONFIRMED.value, 0),
        delivered_orders=status_counts.get(OrderStatus.DELIVERED.value, 0),
        cancelled_orders=status_counts.get(OrderStatus.CANCELLED.value, 0),
        total_products=products_df.height,
        low_stock_products=products_df.filter(pl.col("stock") < low_stock_threshold).height,
        month_sales=_total(fulfilled.filter(this_month), "total_amount"),
        year_sales=_total(year_orders, "total_amount"),
        monthly=[
            MonthlyPoint(month=row["month"], sales=round(row["sales"], 2), profit=round(row["profit"], 2))
            for row in monthly.to_dicts()
        ],
    )
    return stats


class SalesDashboard:
    """
    Example:
        dashboard = SalesDashboard(orders, products)
        stats = await dashboard.compute()
    """

    def __init__(
        self,
        orders: OrderStore,
        products: ProductRepository,
        low_stock_threshold: Optional[int] = None,
    ):
        self._orders = orders
        self._products = products
        self.low_stock_threshold = low_stock_threshold or get_settings().catalog.low_stock_threshold

    async def compute(self, now: Optional[datetime] = None) -> DashboardStats:
        orders = await self._orders.list_orders()
        products = await self._products.list_products(fresh=True)
        stats = compute_sales_stats(orders, products, now=now, low_stock_threshold=self.low_stock_threshold)
        logger.info(
            "Dashboard computed",
            total_orders=stats.total_orders,
            total_sales=stats.total_sales,
            low_stock_products=stats.low_stock_products,
        )
        return stats
