"""
Admin Live View

Keeps one operator's boards current from pushed change notifications:

- orders/INSERT: bump the new-order counter, reload orders, announce the
  customer
- orders/UPDATE: reload orders and product stock
- user_activity/INSERT: re-run the current activity filter

Several live views may run side by side; they share the hub's single
channel subscription and each reloads on its own.
"""

from typing import Any, Dict, List, Optional

import structlog

from storefront.realtime.boards import ActivityBoard, NotificationCenter, OrderBoard, ProductBoard
from storefront.realtime.feed import ACTIVITY_CHANNEL, ORDERS_CHANNEL, ChangeEvent, ChangeType
from storefront.realtime.hub import ChangeHub, Subscription

logger = structlog.get_logger(__name__)


class AdminLiveView:
    """
    Example:
        live = AdminLiveView(hub, order_board, product_board, activity_board, notifications)
        await live.start()
        ...
        live.acknowledge()
        await live.stop()
    """

    def __init__(
        self,
        hub: ChangeHub,
        orders: OrderBoard,
        products: ProductBoard,
        activity: ActivityBoard,
        notifications: Optional[NotificationCenter] = None,
    ):
        self.hub = hub
        self.orders = orders
        self.products = products
        self.activity = activity
        self.notifications = notifications or orders.notifications
        self.new_order_count = 0
        self._subscriptions: List[Subscription] = []

    @property
    def running(self) -> bool:
        return bool(self._subscriptions)

    async def start(self) -> None:
        if self.running:
            return
        self._subscriptions = [
            await self.hub.subscribe(ORDERS_CHANNEL, self.on_order_change),
            await self.hub.subscribe(ACTIVITY_CHANNEL, self.on_activity_change),
        ]
        logger.info("Admin live view started", transport=self.hub.transport)

    async def stop(self) -> None:
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            await subscription.close()
        logger.info("Admin live view stopped")

    async def __aenter__(self) -> "AdminLiveView":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.stop()

    async def refresh(self) -> None:
        """Manual full reload"""
        await self.orders.reload()
        await self.products.reload()
        await self.activity.reload()

    def acknowledge(self) -> int:
        """Reset the new-order counter, returning what it was"""
        seen, self.new_order_count = self.new_order_count, 0
        return seen

    async def on_order_change(self, event: ChangeEvent) -> None:
        if event.type == ChangeType.INSERT:
            self.new_order_count += 1
            await self.orders.reload()
            customer = event.record.get("customer_name") or "unknown customer"
            self.notifications.success(f"New order: {customer}")
        elif event.type == ChangeType.UPDATE:
            await self.orders.reload()
            await self.products.reload()

    async def on_activity_change(self, event: ChangeEvent) -> None:
        if event.type == ChangeType.INSERT:
            await self.activity.reload()

    def snapshot(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "transport": self.hub.transport,
            "new_order_count": self.new_order_count,
            "orders_loaded": len(self.orders.items),
            "products_loaded": len(self.products.items),
            "activity_loaded": len(self.activity.items),
            "notifications": [
                {"level": n.level, "message": n.message, "created_at": n.created_at.isoformat()}
                for n in self.notifications.recent()
            ],
        }
