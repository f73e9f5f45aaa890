"""
Unit Tests - Order Fulfillment and Stock Reconciliation
"""
import uuid

import pytest
from sqlalchemy import select

from storefront.database.models import AdjustmentKind, AdjustmentStatus, OrderStatus, StockAdjustment
from storefront.errors import InvalidTransitionError, NotFoundError, TransientStoreError, ValidationFailedError
from storefront.catalog.repository import StockLedger
from storefront.orders.reconciliation import (
    APPLIED,
    FAILED,
    SKIPPED,
    VOIDED,
    ReconciliationEngine,
    stock_action_for,
)
from storefront.realtime.feed import ORDERS_CHANNEL, ChangeType


class FlakyLedger(StockLedger):
    """Stock ledger whose first N writes fail like a dropped connection"""

    def __init__(self, *args, failures: int = 1, **kwargs):
        super().__init__(*args, **kwargs)
        self.failures = failures

    async def set_stock_in(self, db, product_id, value):
        if self.failures > 0:
            self.failures -= 1
            raise TransientStoreError("connection reset")
        await super().set_stock_in(db, product_id, value)


async def adjustments(session_factory, order_id):
    async with session_factory() as db:
        result = await db.execute(
            select(StockAdjustment).where(StockAdjustment.order_id == order_id).order_by(StockAdjustment.id)
        )
        return list(result.scalars())


class TestStockAction:
    """Tests for the transition table"""

    @pytest.mark.parametrize(
        "previous,new,expected",
        [
            (OrderStatus.PENDING, OrderStatus.CONFIRMED, "decrement"),
            (OrderStatus.PENDING, OrderStatus.DELIVERED, "decrement"),
            (OrderStatus.CONFIRMED, OrderStatus.DELIVERED, "none"),
            (OrderStatus.CONFIRMED, OrderStatus.CONFIRMED, "none"),
            (OrderStatus.CONFIRMED, OrderStatus.PENDING, "restore"),
            (OrderStatus.DELIVERED, OrderStatus.CANCELLED, "restore"),
            (OrderStatus.PENDING, OrderStatus.CANCELLED, "none"),
        ],
    )
    def test_transition_table(self, previous, new, expected):
        """Test which transitions move stock"""
        assert stock_action_for(previous, new) == expected

    def test_restock_disabled(self):
        """Test reversals leave stock alone when restocking is off"""
        assert stock_action_for(OrderStatus.CONFIRMED, OrderStatus.PENDING, restock=False) == "none"


class TestConfirm:
    """Tests for entering the fulfilling states"""

    async def test_confirm_floors_stock_at_zero(self, services, session_factory, make_product, make_order):
        """Test A qty 2 of 5 and B qty 1 of 0 end at A=3, B=0 without an error"""
        a = await make_product("Product A", stock=5)
        b = await make_product("Product B", stock=0)
        order = await make_order([(a, 2), (b, 1)])

        result = await services.engine.transition(order.id, "confirmed")

        assert result.new_status == OrderStatus.CONFIRMED
        assert result.stock_action == "decrement"
        assert [o.outcome for o in result.adjustments] == [APPLIED, APPLIED]
        assert result.fully_applied
        assert await services.ledger.get_stock(a.id) == 3
        assert await services.ledger.get_stock(b.id) == 0

        rows = await adjustments(session_factory, order.id)
        assert [(r.kind, r.status, r.applied_quantity) for r in rows] == [
            (AdjustmentKind.DECREMENT, AdjustmentStatus.APPLIED, 2),
            (AdjustmentKind.DECREMENT, AdjustmentStatus.APPLIED, 0),
        ]

    async def test_reconfirm_is_a_no_op(self, services, session_factory, make_product, make_order):
        """Test confirmed -> confirmed changes neither stock nor the order beyond its write time"""
        a = await make_product("Product A", stock=5)
        order = await make_order([(a, 2)])
        await services.engine.transition(order.id, "confirmed")
        before = await services.orders.get_order(order.id)

        result = await services.engine.transition(order.id, "confirmed")
        after = await services.orders.get_order(order.id)

        assert result.stock_action == "none"
        assert result.adjustments == []
        assert not result.status_changed
        assert await services.ledger.get_stock(a.id) == 3
        assert after.status == before.status
        assert after.total_amount == before.total_amount
        assert after.delivery_charge == before.delivery_charge
        assert [(i.product_id, i.quantity, i.price) for i in after.items] == [
            (i.product_id, i.quantity, i.price) for i in before.items
        ]
        assert len(await adjustments(session_factory, order.id)) == 1

    async def test_confirm_to_delivered_keeps_stock(self, services, make_product, make_order):
        """Test moving between fulfilling states never decrements twice"""
        a = await make_product(stock=10)
        order = await make_order([(a, 4)])

        await services.engine.transition(order.id, "confirmed")
        result = await services.engine.transition(order.id, "delivered")

        assert result.stock_action == "none"
        assert await services.ledger.get_stock(a.id) == 6

    async def test_pending_straight_to_delivered_decrements(self, services, make_product, make_order):
        """Test skipping confirmed still takes the stock"""
        a = await make_product(stock=10)
        order = await make_order([(a, 3)])

        await services.engine.transition(order.id, OrderStatus.DELIVERED)

        assert await services.ledger.get_stock(a.id) == 7

    async def test_publishes_order_update(self, services, feed, make_product, make_order):
        """Test the transition is announced on the orders channel"""
        a = await make_product()
        order = await make_order([(a, 1)])

        await services.engine.transition(order.id, "confirmed")

        updates = [e for e in feed.events(ORDERS_CHANNEL) if e.type == ChangeType.UPDATE]
        assert len(updates) == 1
        assert updates[0].record == {"id": str(order.id), "status": "confirmed", "previous_status": "pending"}


class TestReversal:
    """Tests for leaving the fulfilling states"""

    async def test_back_to_pending_restores_what_was_taken(self, services, session_factory, make_product, make_order):
        """Test restock gives back the applied quantity, not the ordered one"""
        a = await make_product("Product A", stock=5)
        b = await make_product("Product B", stock=0)
        order = await make_order([(a, 2), (b, 1)])
        await services.engine.transition(order.id, "confirmed")

        result = await services.engine.transition(order.id, "pending")

        assert result.stock_action == "restore"
        assert await services.ledger.get_stock(a.id) == 5
        assert await services.ledger.get_stock(b.id) == 0
        rows = await adjustments(session_factory, order.id)
        assert [r.status for r in rows if r.kind == AdjustmentKind.DECREMENT] == [
            AdjustmentStatus.REVERSED, AdjustmentStatus.REVERSED,
        ]
        restores = [r for r in rows if r.kind == AdjustmentKind.RESTORE]
        assert [(r.quantity, r.status) for r in restores] == [(2, AdjustmentStatus.APPLIED)]

    async def test_confirm_again_after_reversal(self, services, make_product, make_order):
        """Test a full confirm/unconfirm/confirm cycle nets one decrement"""
        a = await make_product(stock=8)
        order = await make_order([(a, 3)])

        await services.engine.transition(order.id, "confirmed")
        await services.engine.transition(order.id, "pending")
        await services.engine.transition(order.id, "confirmed")

        assert await services.ledger.get_stock(a.id) == 5

    async def test_restock_disabled_keeps_stock(self, services, session_factory, make_product, make_order):
        """Test the one-way mode never restores"""
        engine = ReconciliationEngine(
            session_factory,
            services.orders,
            services.ledger,
            restock_on_reversal=False,
        )
        a = await make_product(stock=5)
        order = await make_order([(a, 2)])
        await engine.transition(order.id, "confirmed")

        result = await engine.transition(order.id, "pending")

        assert result.stock_action == "none"
        assert await services.ledger.get_stock(a.id) == 3

    async def test_cancel_restores_and_is_terminal(self, services, make_product, make_order):
        """Test cancelling a delivered order restocks and cannot be undone"""
        a = await make_product(stock=5)
        order = await make_order([(a, 2)])
        await services.engine.transition(order.id, "delivered")

        await services.engine.transition(order.id, "cancelled")
        assert await services.ledger.get_stock(a.id) == 5

        with pytest.raises(InvalidTransitionError):
            await services.engine.transition(order.id, "confirmed")

        stored = await services.orders.get_order(order.id)
        assert stored.status == OrderStatus.CANCELLED
        assert await services.ledger.get_stock(a.id) == 5

    async def test_cancelled_to_cancelled_allowed(self, services, make_product, make_order):
        """Test re-saving a cancelled order is a harmless no-op"""
        a = await make_product(stock=5)
        order = await make_order([(a, 2)])
        await services.engine.transition(order.id, "cancelled")

        result = await services.engine.transition(order.id, "cancelled")

        assert result.stock_action == "none"
        assert await services.ledger.get_stock(a.id) == 5

    async def test_caller_reported_cancelled_is_rejected(self, services, make_product, make_order):
        """Test the terminal rule also holds for the caller's view of the previous status"""
        a = await make_product(stock=5)
        order = await make_order([(a, 1)])

        with pytest.raises(InvalidTransitionError):
            await services.engine.transition(order.id, "confirmed", previous_status="cancelled")

        assert (await services.orders.get_order(order.id)).status == OrderStatus.PENDING
        assert await services.ledger.get_stock(a.id) == 5


class TestFailures:
    """Tests for missing products, failed writes and replay"""

    async def test_missing_product_is_skipped(self, services, make_product, make_order):
        """Test a deleted product skips its line and the status still changes"""
        a = await make_product("Gone", stock=5)
        b = await make_product("Kept", stock=5)
        order = await make_order([(a, 1), (b, 2)])
        await services.products.delete_product(a.id)

        result = await services.engine.transition(order.id, "confirmed")

        assert sorted(o.outcome for o in result.adjustments) == sorted([SKIPPED, APPLIED])
        assert result.fully_applied
        assert (await services.orders.get_order(order.id)).status == OrderStatus.CONFIRMED
        assert await services.ledger.get_stock(b.id) == 3

    async def test_failed_write_stays_pending_until_replay(self, services, session_factory, make_product, make_order):
        """Test a failed stock write is recorded and applied exactly once by replay"""
        flaky = FlakyLedger(session_factory, services.capabilities, failures=1)
        engine = ReconciliationEngine(session_factory, services.orders, flaky, restock_on_reversal=True)
        a = await make_product(stock=5)
        order = await make_order([(a, 2)])

        result = await engine.transition(order.id, "confirmed")

        assert [o.outcome for o in result.adjustments] == [FAILED]
        assert not result.fully_applied
        assert (await services.orders.get_order(order.id)).status == OrderStatus.CONFIRMED
        assert await services.ledger.get_stock(a.id) == 5
        [row] = await adjustments(session_factory, order.id)
        assert row.status == AdjustmentStatus.PENDING
        assert row.attempts == 1
        assert row.last_error == "connection reset"

        replayed = await engine.replay_pending()

        assert [o.outcome for o in replayed] == [APPLIED]
        assert await services.ledger.get_stock(a.id) == 3
        assert await engine.replay_pending() == []
        assert await services.ledger.get_stock(a.id) == 3

    async def test_reversal_voids_unapplied_decrement(self, services, session_factory, make_product, make_order):
        """Test undoing a confirm whose decrement never landed gives nothing back"""
        flaky = FlakyLedger(session_factory, services.capabilities, failures=1)
        engine = ReconciliationEngine(session_factory, services.orders, flaky, restock_on_reversal=True)
        a = await make_product(stock=5)
        order = await make_order([(a, 2)])
        await engine.transition(order.id, "confirmed")

        result = await engine.transition(order.id, "pending")

        assert [o.outcome for o in result.adjustments] == [VOIDED]
        assert await services.ledger.get_stock(a.id) == 5
        [row] = await adjustments(session_factory, order.id)
        assert row.status == AdjustmentStatus.VOID
        assert await engine.replay_pending() == []

    async def test_unknown_order(self, services):
        """Test a missing order is reported"""
        with pytest.raises(NotFoundError):
            await services.engine.transition(uuid.uuid4(), "confirmed")

    async def test_unknown_status(self, services, make_product, make_order):
        """Test an unknown status string is rejected before any write"""
        a = await make_product()
        order = await make_order([(a, 1)])

        with pytest.raises(ValidationFailedError):
            await services.engine.transition(order.id, "shipped")
