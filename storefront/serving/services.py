"""
Service Wiring

Builds the storefront services once per process from the session factory,
the detected schema capabilities and the change hub. The FastAPI lifespan
stores the result on app.state.services.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.analytics.aggregator import ActivityAggregator
from storefront.analytics.conversions import ConversionSink, NullConversionSink
from storefront.analytics.dashboard import SalesDashboard
from storefront.analytics.recorder import ActivityRecorder
from storefront.analytics.repository import ActivityRepository
from storefront.analytics.session import SessionIdentityProvider
from storefront.catalog.media import LocalMediaStore, MediaStore
from storefront.catalog.repository import ProductRepository, StockLedger
from storefront.database.capabilities import SchemaCapabilities
from storefront.orders.delivery import DeliveryFees
from storefront.orders.reconciliation import ReconciliationEngine
from storefront.orders.store import OrderStore
from storefront.realtime.boards import ActivityBoard, NotificationCenter, OrderBoard, ProductBoard
from storefront.realtime.hub import ChangeHub
from storefront.realtime.listener import AdminLiveView
from storefront.serving.cache import CacheManager, catalog_cache


@dataclass
class Services:
    capabilities: SchemaCapabilities
    hub: ChangeHub
    products: ProductRepository
    ledger: StockLedger
    fees: DeliveryFees
    orders: OrderStore
    engine: ReconciliationEngine
    activity: ActivityRepository
    aggregator: ActivityAggregator
    recorder: ActivityRecorder
    sessions: SessionIdentityProvider
    sink: ConversionSink
    media: MediaStore
    dashboard: SalesDashboard
    notifications: NotificationCenter
    live_view: AdminLiveView


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    capabilities: SchemaCapabilities,
    hub: ChangeHub,
    sink: Optional[ConversionSink] = None,
    media: Optional[MediaStore] = None,
    cache: Optional[CacheManager] = None,
    restock_on_reversal: Optional[bool] = None,
) -> Services:
    cache = cache or catalog_cache()
    sink = sink or NullConversionSink()

    products = ProductRepository(session_factory, capabilities, cache=cache)
    ledger = StockLedger(session_factory, capabilities, cache=cache)
    fees = DeliveryFees(session_factory, capabilities)
    orders = OrderStore(session_factory, products, fees, hub=hub)
    engine = ReconciliationEngine(session_factory, orders, ledger, hub=hub, restock_on_reversal=restock_on_reversal)

    activity = ActivityRepository(session_factory)
    aggregator = ActivityAggregator(activity)
    recorder = ActivityRecorder(activity, hub=hub, sink=sink)

    notifications = NotificationCenter()
    live_view = AdminLiveView(
        hub,
        OrderBoard(orders, notifications),
        ProductBoard(products, notifications),
        ActivityBoard(aggregator, notifications),
        notifications,
    )

    return Services(
        capabilities=capabilities,
        hub=hub,
        products=products,
        ledger=ledger,
        fees=fees,
        orders=orders,
        engine=engine,
        activity=activity,
        aggregator=aggregator,
        recorder=recorder,
        sessions=SessionIdentityProvider(),
        sink=sink,
        media=media or LocalMediaStore(),
        dashboard=SalesDashboard(orders, products),
        notifications=notifications,
        live_view=live_view,
    )
