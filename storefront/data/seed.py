"""
Demo Data Seeder

Fills an empty database with a small demo storefront:
- Catalog products with prices, cost prices and stock
- Orders in every status, reconciled through the fulfillment engine
- Visitor activity across a handful of browsing sessions

Everything goes through the same services the API uses, so stock levels
and adjustment rows end up exactly as they would in production.

Usage:
    python -m storefront.data.seed --products 24 --orders 40
"""

import argparse
import asyncio
import random
from decimal import Decimal
from typing import List

import structlog
from faker import Faker

from storefront.analytics.session import new_session_token
from storefront.catalog.repository import ProductInput, ProductRecord
from storefront.config import get_settings
from storefront.config.logging import configure_logging
from storefront.database.capabilities import detect_capabilities
from storefront.database.connection import close_database, create_schema, get_session_factory, init_database
from storefront.database.models import ActivityType, DeliveryZone, OrderStatus
from storefront.realtime.feed import LocalChangeFeed
from storefront.realtime.hub import ChangeHub
from storefront.serving.services import Services, build_services

logger = structlog.get_logger(__name__)

fake = Faker()

# Seed for reproducibility
random.seed(42)
Faker.seed(42)


# =============================================================================
# CONFIGURATION
# =============================================================================

PRODUCT_KINDS = ["Panjabi", "Saree", "Kurti", "Shirt", "Scarf", "Sandal", "Wallet", "Bag"]

# Final order status mix
ORDER_STATUSES = [
    (OrderStatus.PENDING, 0.25),
    (OrderStatus.CONFIRMED, 0.25),
    (OrderStatus.DELIVERED, 0.40),
    (OrderStatus.CANCELLED, 0.10),
]

BROWSE_KINDS = [
    ActivityType.PAGE_VIEW,
    ActivityType.PRODUCT_VIEW,
    ActivityType.PRODUCT_CLICK,
    ActivityType.ADD_TO_CART,
    ActivityType.SEARCH,
]

USER_AGENTS = [
    "Mozilla/5.0 (Linux; Android 13) Mobile Safari/537.36",
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Safari/604.1",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0 Safari/537.36",
]


# =============================================================================
# GENERATORS
# =============================================================================

def product_inputs(count: int) -> List[ProductInput]:
    items = []
    for i in range(count):
        price = Decimal(random.randrange(250, 6000, 50))
        margin = Decimal(random.uniform(0.15, 0.45)).quantize(Decimal("0.01"))
        items.append(ProductInput(
            name=f"{fake.color_name()} {random.choice(PRODUCT_KINDS)}",
            description=fake.sentence(nb_words=12),
            price=price,
            cost_price=(price * (1 - margin)).quantize(Decimal("1")),
            stock=random.randint(0, 40),
            # a few featured items, the rest fall back to the default rank
            priority=i + 1 if i < 4 else None,
        ))
    return items


async def seed_products(services: Services, count: int) -> List[ProductRecord]:
    logger.info("Seeding products", count=count)
    created = []
    for data in product_inputs(count):
        created.append(await services.products.create_product(data))
    return created


async def seed_orders(services: Services, products: List[ProductRecord], count: int) -> int:
    logger.info("Seeding orders", count=count)
    statuses, weights = zip(*ORDER_STATUSES)

    for _ in range(count):
        lines = [
            (product.id, random.randint(1, 3))
            for product in random.sample(products, k=min(len(products), random.randint(1, 3)))
        ]
        order = await services.orders.create_order(
            customer_name=fake.name(),
            phone=fake.numerify("01#########"),
            address=fake.address().replace("\n", ", "),
            delivery_zone=random.choice(list(DeliveryZone)),
            items=lines,
        )

        target = random.choices(statuses, weights=weights)[0]
        if target is OrderStatus.DELIVERED:
            await services.engine.transition(order.id, OrderStatus.CONFIRMED)
        if target is not OrderStatus.PENDING:
            await services.engine.transition(order.id, target)

    return count


async def seed_activity(services: Services, products: List[ProductRecord], sessions: int) -> int:
    logger.info("Seeding visitor activity", sessions=sessions)
    recorded = 0
    for _ in range(sessions):
        session_id = new_session_token()
        user_agent = random.choice(USER_AGENTS)
        ip_address = fake.ipv4_public()

        for _ in range(random.randint(3, 12)):
            kind = random.choice(BROWSE_KINDS)
            product = random.choice(products) if products else None
            metadata = {}
            if kind is ActivityType.SEARCH:
                metadata["search_query"] = fake.word()
            elif kind is ActivityType.ADD_TO_CART and product is not None:
                metadata.update(price=str(product.price), quantity=1)

            await services.recorder.record(
                session_id=session_id,
                activity_type=kind,
                page_path=f"/products/{product.id}" if product and kind is not ActivityType.PAGE_VIEW else "/",
                product_id=product.id if product and kind is not ActivityType.PAGE_VIEW else None,
                product_name=product.name if product and kind is not ActivityType.PAGE_VIEW else None,
                metadata=metadata,
                user_agent=user_agent,
                ip_address=ip_address,
            )
            recorded += 1
    return recorded


# =============================================================================
# ENTRY POINT
# =============================================================================

async def seed(products: int = 24, orders: int = 40, sessions: int = 15, url: str = None) -> None:
    engine = await init_database(url)
    try:
        if get_settings().database.auto_create:
            await create_schema(engine)
        capabilities = await detect_capabilities(engine)
        hub = ChangeHub(LocalChangeFeed())
        services = build_services(get_session_factory(), capabilities, hub)

        catalog = await seed_products(services, products)
        await seed_orders(services, catalog, orders)
        events = await seed_activity(services, catalog, sessions)
        await hub.close()

        logger.info("Seeding complete", products=len(catalog), orders=orders, activity=events)
    finally:
        await close_database()


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the storefront database with demo data")
    parser.add_argument("--products", type=int, default=24)
    parser.add_argument("--orders", type=int, default=40)
    parser.add_argument("--sessions", type=int, default=15)
    parser.add_argument("--database-url", default=None)
    args = parser.parse_args()

    configure_logging()
    asyncio.run(seed(args.products, args.orders, args.sessions, args.database_url))


if __name__ == "__main__":
    main()
