"""
Unit Tests - Sales Dashboard
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from storefront.analytics.dashboard import compute_sales_stats
from storefront.database.models import Order, OrderItem, OrderStatus

NOW = datetime(2024, 6, 15, tzinfo=timezone.utc)


def order(status, total, created_at, lines):
    return Order(
        id=uuid.uuid4(),
        status=status,
        total_amount=Decimal(str(total)),
        created_at=created_at,
        items=[
            OrderItem(id=uuid.uuid4(), product_id=pid, price=Decimal(str(price)), quantity=qty)
            for pid, price, qty in lines
        ],
    )


@pytest.fixture
def catalog(product_record):
    with_cost = product_record("With cost", price="500", stock=3)
    with_cost.cost_price = Decimal("300")
    without_cost = product_record("Without cost", price="300", stock=20)
    return with_cost, without_cost


@pytest.fixture
def book(catalog):
    with_cost, without_cost = catalog
    return [
        order(OrderStatus.CONFIRMED, 1060, datetime(2024, 5, 10, tzinfo=timezone.utc), [(with_cost.id, 500, 2)]),
        order(OrderStatus.DELIVERED, 360, datetime(2024, 6, 1, tzinfo=timezone.utc), [(without_cost.id, 300, 1)]),
        order(OrderStatus.PENDING, 1000, datetime(2024, 6, 2, tzinfo=timezone.utc), [(with_cost.id, 500, 2)]),
        order(OrderStatus.CANCELLED, 560, datetime(2024, 6, 3, tzinfo=timezone.utc), [(with_cost.id, 500, 1)]),
    ]


class TestSalesStats:
    """Tests for compute_sales_stats"""

    def test_totals_count_only_fulfilled_orders(self, book, catalog):
        """Test sales and profit come from confirmed and delivered orders"""
        stats = compute_sales_stats(book, catalog, now=NOW)

        assert stats.total_sales == 1420.0
        assert stats.total_profit == 700.0
        assert stats.profit_margin_percent == 49.3
        assert stats.average_order_value == 355.0

    def test_status_counts(self, book, catalog):
        """Test every status is counted"""
        stats = compute_sales_stats(book, catalog, now=NOW)

        assert stats.total_orders == 4
        assert (stats.pending_orders, stats.confirmed_orders) == (1, 1)
        assert (stats.delivered_orders, stats.cancelled_orders) == (1, 1)

    def test_periods_and_monthly_series(self, book, catalog):
        """Test month, year and per-month figures"""
        stats = compute_sales_stats(book, catalog, now=NOW)

        assert stats.month_sales == 360.0
        assert stats.year_sales == 1420.0
        assert len(stats.monthly) == 12
        may, june = stats.monthly[4], stats.monthly[5]
        assert (may.month, may.sales, may.profit) == (5, 1060.0, 400.0)
        assert (june.month, june.sales, june.profit) == (6, 360.0, 300.0)

    def test_low_stock(self, book, catalog):
        """Test products under the threshold are counted"""
        stats = compute_sales_stats(book, catalog, now=NOW, low_stock_threshold=10)

        assert stats.total_products == 2
        assert stats.low_stock_products == 1

    def test_empty(self):
        """Test an empty store yields zeros"""
        stats = compute_sales_stats([], [], now=NOW)

        assert stats.total_sales == 0.0
        assert stats.profit_margin_percent == 0.0
        assert stats.average_order_value == 0.0
        assert all(point.sales == 0.0 for point in stats.monthly)


class TestSalesDashboard:
    """Tests for SalesDashboard over the store"""

    async def test_compute(self, services, make_product, make_order):
        """Test figures follow the order lifecycle"""
        product = await make_product(price="400", stock=4, cost_price=Decimal("250"))
        order_row = await make_order([(product, 2)])
        await services.engine.transition(order_row.id, "confirmed")

        stats = await services.dashboard.compute()

        assert stats.total_orders == 1
        assert stats.confirmed_orders == 1
        assert stats.total_sales == float(order_row.total_amount)
        assert stats.total_profit == 300.0
        assert stats.low_stock_products == 1
