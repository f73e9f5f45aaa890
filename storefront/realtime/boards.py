"""
Operator Boards

In-memory views the back office keeps of orders, product stock and visitor
activity. A failed reload clears the board and posts an error notification
instead of leaving stale rows on screen.
"""

from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, Generic, List, Optional, TypeVar

import structlog

from storefront.analytics.aggregator import ActivityAggregator, ActivityPage
from storefront.analytics.repository import ALL_KINDS, parse_kind_filter
from storefront.catalog.repository import ProductRecord, ProductRepository
from storefront.database.models import Order, utcnow
from storefront.errors import StorefrontError
from storefront.orders.store import OrderStore

logger = structlog.get_logger(__name__)

T = TypeVar("T")


# =============================================================================
# NOTIFICATIONS
# =============================================================================

@dataclass
class Notification:
    level: str
    message: str
    created_at: datetime = field(default_factory=utcnow)


class NotificationCenter:
    """Bounded list of transient operator notifications, newest last"""

    def __init__(self, capacity: int = 50):
        self._items: Deque[Notification] = deque(maxlen=capacity)

    def push(self, level: str, message: str) -> Notification:
        notification = Notification(level=level, message=message)
        self._items.append(notification)
        log = logger.error if level == "error" else logger.info
        log("Operator notification", level=level, message=message)
        return notification

    def success(self, message: str) -> Notification:
        return self.push("success", message)

    def info(self, message: str) -> Notification:
        return self.push("info", message)

    def error(self, message: str) -> Notification:
        return self.push("error", message)

    def recent(self, limit: Optional[int] = None) -> List[Notification]:
        items = list(self._items)
        return items[-limit:] if limit else items

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)


# =============================================================================
# BOARDS
# =============================================================================

class Board(ABC, Generic[T]):
    """Reloadable operator view"""

    label = "data"

    def __init__(self, notifications: NotificationCenter):
        self.notifications = notifications
        self.items: List[T] = []
        self.loaded_at: Optional[datetime] = None
        self.error: Optional[str] = None
        self.reloads = 0

    @abstractmethod
    async def _load(self) -> List[T]:
        pass

    async def reload(self) -> bool:
        """Refresh from the store; returns False (and empties the board) on failure"""
        self.reloads += 1
        try:
            self.items = await self._load()
        except StorefrontError as e:
            self.items = []
            self.error = e.message
            self.notifications.error(f"Could not load {self.label}: {e.message}")
            return False

        self.error = None
        self.loaded_at = utcnow()
        return True


class OrderBoard(Board[Order]):
    label = "orders"

    def __init__(self, orders: OrderStore, notifications: NotificationCenter):
        super().__init__(notifications)
        self._orders = orders

    async def _load(self) -> List[Order]:
        return await self._orders.list_orders()


class ProductBoard(Board[ProductRecord]):
    label = "products"

    def __init__(self, products: ProductRepository, notifications: NotificationCenter):
        super().__init__(notifications)
        self._products = products

    async def _load(self) -> List[ProductRecord]:
        return await self._products.list_products(fresh=True)


class ActivityBoard(Board):
    """Keeps the operator's current activity filter and re-runs it on reload"""

    label = "activity"

    def __init__(self, aggregator: ActivityAggregator, notifications: NotificationCenter):
        super().__init__(notifications)
        self._aggregator = aggregator
        self.kind = ALL_KINDS
        self.search = ""
        self.page_number = 1
        self.page: Optional[ActivityPage] = None

    async def _load(self):
        self.page = await self._aggregator.query(self.kind, self.search, self.page_number)
        return self.page.items

    async def reload(self) -> bool:
        ok = await super().reload()
        if not ok:
            self.page = None
        return ok

    async def set_filter(self, kind: str = ALL_KINDS, search: str = "") -> bool:
        """Change kind/search and go back to the first page"""
        parse_kind_filter(kind)
        self.kind = kind or ALL_KINDS
        self.search = search or ""
        self.page_number = 1
        return await self.reload()

    async def go_to(self, page: int) -> bool:
        self.page_number = max(1, page)
        return await self.reload()
