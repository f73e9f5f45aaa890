"""
Test Suite Configuration
"""
import os

# Settings are read at import time by several modules
os.environ["APP_ENV"] = "testing"
os.environ["REDIS_ENABLED"] = "false"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ.pop("ADMIN_TOKEN", None)
os.environ.pop("TRACKING_CONVERSION_ENDPOINT", None)

import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import pytest

from storefront.config import get_settings

get_settings.cache_clear()

from storefront.catalog.media import LocalMediaStore
from storefront.catalog.repository import ProductInput, ProductRecord
from storefront.database.capabilities import SchemaCapabilities
from storefront.database.connection import create_engine_for_url, create_schema, create_session_factory
from storefront.realtime.feed import ChangeEvent, ChangeFeed, LocalChangeFeed
from storefront.realtime.hub import ChangeHub
from storefront.serving.services import build_services


class RecordingChangeFeed(LocalChangeFeed):
    """In-process feed that also remembers everything published"""

    name = "recording"

    def __init__(self):
        super().__init__()
        self.published: List[Tuple[str, ChangeEvent]] = []

    async def publish(self, channel: str, event: ChangeEvent) -> None:
        self.published.append((channel, event))
        await super().publish(channel, event)

    def events(self, channel: str) -> List[ChangeEvent]:
        return [event for name, event in self.published if name == channel]


class BrokenChangeFeed(ChangeFeed):
    """Transport whose every call fails"""

    name = "broken"

    async def publish(self, channel: str, event: ChangeEvent) -> None:
        raise ConnectionError("channel down")

    async def subscribe(self, channel: str):
        raise ConnectionError("channel down")


@pytest.fixture
async def engine():
    """Fresh in-memory database per test"""
    engine = create_engine_for_url("sqlite+aiosqlite://")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def capabilities() -> SchemaCapabilities:
    return SchemaCapabilities.full()


@pytest.fixture
def feed() -> RecordingChangeFeed:
    return RecordingChangeFeed()


@pytest.fixture
async def hub(feed):
    hub = ChangeHub(feed)
    yield hub
    await hub.close()


@pytest.fixture
def services(session_factory, capabilities, hub, tmp_path):
    return build_services(
        session_factory,
        capabilities,
        hub,
        media=LocalMediaStore(root=str(tmp_path / "media"), public_base_url="/media"),
        restock_on_reversal=True,
    )


@pytest.fixture
def make_product(services):
    """Create a product through the repository"""

    async def _make(
        name: str = "Cotton Panjabi",
        price: Any = "500",
        stock: int = 10,
        **extra: Any,
    ) -> ProductRecord:
        data: Dict[str, Any] = {"name": name, "price": Decimal(str(price)), "stock": stock, **extra}
        return await services.products.create_product(ProductInput(**data))

    return _make


@pytest.fixture
def make_order(services):
    """Place an order for (product, quantity) pairs"""

    async def _make(
        lines: List[Tuple[ProductRecord, int]],
        customer_name: str = "Rahim Uddin",
        zone: str = "inside_dhaka",
    ):
        return await services.orders.create_order(
            customer_name=customer_name,
            phone="01700000000",
            address="House 12, Road 5, Dhanmondi",
            delivery_zone=zone,
            items=[(product.id, quantity) for product, quantity in lines],
        )

    return _make


@pytest.fixture
def product_record():
    """Plain catalog record factory for pipeline tests (no database)"""

    def _make(
        name: str,
        price: Any = "100",
        priority: Optional[int] = None,
        created_at=None,
        description: Optional[str] = None,
        stock: int = 5,
    ) -> ProductRecord:
        return ProductRecord(
            id=uuid.uuid4(),
            name=name,
            price=Decimal(str(price)),
            stock=stock,
            description=description,
            priority=priority if priority is not None else 999,
            created_at=created_at,
        )

    return _make


@pytest.fixture
def broken_feed() -> BrokenChangeFeed:
    return BrokenChangeFeed()
