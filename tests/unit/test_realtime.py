"""
Unit Tests - Change Notifications and the Admin Live View
"""
import asyncio

import pytest

from storefront.errors import TransientStoreError
from storefront.realtime.boards import ActivityBoard, NotificationCenter, OrderBoard, ProductBoard
from storefront.realtime.feed import (
    ACTIVITY_CHANNEL,
    ORDERS_CHANNEL,
    ChangeEvent,
    ChangeType,
    LocalChangeFeed,
)
from storefront.realtime.hub import ChangeHub
from storefront.realtime.listener import AdminLiveView


async def eventually(predicate, timeout: float = 2.0):
    """Poll until the pump task has delivered what the test expects"""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class UnavailableProducts:
    """Product source whose store is down"""

    async def list_products(self, fresh=False):
        raise TransientStoreError("The store is temporarily unavailable")


class TestLocalChangeFeed:
    """Tests for the in-process transport"""

    async def test_every_stream_gets_every_event(self):
        """Test fan-out to all open streams on a channel"""
        feed = LocalChangeFeed()
        first = await feed.subscribe(ORDERS_CHANNEL)
        second = await feed.subscribe(ORDERS_CHANNEL)
        event = ChangeEvent(channel=ORDERS_CHANNEL, type=ChangeType.INSERT, record={"id": "1"})

        await feed.publish(ORDERS_CHANNEL, event)

        assert await first.__anext__() == event
        assert await second.__anext__() == event

    async def test_closed_stream_ends(self):
        """Test a closed stream stops iterating and detaches"""
        feed = LocalChangeFeed()
        stream = await feed.subscribe(ORDERS_CHANNEL)

        await stream.aclose()

        assert feed.subscriber_count(ORDERS_CHANNEL) == 0
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()


class TestChangeHub:
    """Tests for ChangeHub"""

    async def test_handlers_share_one_subscription(self, hub, feed):
        """Test two handlers on a channel cost one transport subscription"""
        seen_a, seen_b = [], []

        async def handler_a(event):
            seen_a.append(event)

        async def handler_b(event):
            seen_b.append(event)

        await hub.subscribe(ORDERS_CHANNEL, handler_a)
        await hub.subscribe(ORDERS_CHANNEL, handler_b)
        assert feed.subscriber_count(ORDERS_CHANNEL) == 1

        assert await hub.publish(ORDERS_CHANNEL, ChangeType.INSERT, {"id": "o1"})

        await eventually(lambda: seen_a and seen_b)
        assert seen_a[0].record == {"id": "o1"}

    async def test_failing_handler_is_isolated(self, hub):
        """Test one raising handler does not stop the next"""
        delivered = []

        async def broken(event):
            raise RuntimeError("render failed")

        async def healthy(event):
            delivered.append(event)

        await hub.subscribe(ORDERS_CHANNEL, broken)
        await hub.subscribe(ORDERS_CHANNEL, healthy)

        await hub.publish(ORDERS_CHANNEL, ChangeType.UPDATE, {"id": "o1"})
        await hub.publish(ORDERS_CHANNEL, ChangeType.UPDATE, {"id": "o2"})

        await eventually(lambda: len(delivered) == 2)
        assert hub.is_listening(ORDERS_CHANNEL)

    async def test_last_handler_closes_subscription(self, hub, feed):
        """Test the transport subscription closes with the last handler"""
        async def handler(event):
            pass

        first = await hub.subscribe(ACTIVITY_CHANNEL, handler)
        second = await hub.subscribe(ACTIVITY_CHANNEL, handler)

        await first.close()
        assert hub.is_listening(ACTIVITY_CHANNEL)

        await second.close()
        assert not hub.is_listening(ACTIVITY_CHANNEL)
        assert feed.subscriber_count(ACTIVITY_CHANNEL) == 0

    async def test_publish_failure_is_reported_not_raised(self, broken_feed):
        """Test a dead transport makes publish return False"""
        hub = ChangeHub(broken_feed)

        assert await hub.publish(ORDERS_CHANNEL, ChangeType.INSERT, {"id": "o1"}) is False

    async def test_ended_stream_reopens_on_next_subscribe(self, hub, feed):
        """Test a channel whose stream ended is reopened for a new handler"""
        delivered = []

        async def handler(event):
            delivered.append(event)

        await hub.subscribe(ORDERS_CHANNEL, handler)
        await feed.close()
        await eventually(lambda: not hub.is_listening(ORDERS_CHANNEL))

        await hub.subscribe(ORDERS_CHANNEL, handler)
        await hub.publish(ORDERS_CHANNEL, ChangeType.INSERT, {"id": "o2"})

        assert hub.is_listening(ORDERS_CHANNEL)
        # both registrations of the handler survive the reopen
        await eventually(lambda: len(delivered) == 2)


class TestBoards:
    """Tests for the operator boards"""

    async def test_failed_reload_clears_and_notifies(self):
        """Test a store failure empties the board and posts an error"""
        notifications = NotificationCenter()
        board = ProductBoard(UnavailableProducts(), notifications)
        board.items = ["stale"]

        assert await board.reload() is False

        assert board.items == []
        assert board.error == "The store is temporarily unavailable"
        [note] = notifications.recent()
        assert note.level == "error"

    async def test_notification_capacity(self):
        """Test only the newest notifications are kept"""
        center = NotificationCenter(capacity=2)
        for i in range(3):
            center.info(f"n{i}")

        assert [n.message for n in center.recent()] == ["n1", "n2"]

    async def test_activity_filter_resets_page(self, services):
        """Test changing the filter returns to page 1"""
        for i in range(12):
            await services.recorder.record(f"s{i}", "page_view", page_path=f"/p/{i}")
        board = ActivityBoard(services.aggregator, NotificationCenter())

        await board.go_to(2)
        assert board.page_number == 2
        assert len(board.items) == 2

        await board.set_filter("page_view", "/p/1")

        assert board.page_number == 1
        assert board.page.total_count == 3


class TestAdminLiveView:
    """Tests for AdminLiveView"""

    async def test_new_order_updates_counter_and_board(self, services, make_product, make_order):
        """Test an order insert bumps the counter, reloads orders and announces the customer"""
        live = services.live_view
        product = await make_product(stock=5)

        async with live:
            await make_order([(product, 1)], customer_name="Nusrat")

            await eventually(lambda: live.new_order_count == 1 and len(live.orders.items) == 1)
            assert live.notifications.recent()[-1].message == "New order: Nusrat"

            assert live.acknowledge() == 1
            assert live.new_order_count == 0

        assert not live.running
        assert services.hub.handler_count(ORDERS_CHANNEL) == 0

    async def test_status_change_reloads_stock(self, services, make_product, make_order):
        """Test an order update refreshes orders and product stock"""
        live = services.live_view
        product = await make_product(stock=5)
        order = await make_order([(product, 2)])

        async with live:
            await live.refresh()
            await services.engine.transition(order.id, "confirmed")

            await eventually(lambda: live.products.items and live.products.items[0].stock == 3)
            assert live.orders.items[0].status.value == "confirmed"
            assert live.new_order_count == 0

    async def test_activity_insert_reruns_filter(self, services):
        """Test a recorded event shows up on the activity board"""
        live = services.live_view

        async with live:
            await services.recorder.record("tok", "page_view", page_path="/")

            await eventually(lambda: len(live.activity.items) == 1)

    async def test_two_views_each_reload(self, services, make_product, make_order):
        """Test side-by-side views share the subscription and both update"""
        first = services.live_view
        second = AdminLiveView(
            services.hub,
            OrderBoard(services.orders, NotificationCenter()),
            ProductBoard(services.products, NotificationCenter()),
            ActivityBoard(services.aggregator, NotificationCenter()),
        )
        product = await make_product()

        async with first, second:
            assert services.hub.handler_count(ORDERS_CHANNEL) == 2
            await make_order([(product, 1)])

            await eventually(lambda: first.new_order_count == 1 and second.new_order_count == 1)

    async def test_snapshot(self, services):
        """Test the snapshot describes the view state"""
        snapshot = services.live_view.snapshot()

        assert snapshot["running"] is False
        assert snapshot["transport"] == "recording"
        assert snapshot["new_order_count"] == 0
