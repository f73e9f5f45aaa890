"""
Schema Capability Descriptor

Older deployments run with a narrower products table (no priority,
cost_price or images columns) and may lack the delivery_charges table.
The live schema is inspected once at startup and every repository selects
its projection from the resulting descriptor instead of reacting to
"missing column" errors after the fact.
"""

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet

import structlog
from sqlalchemy import column, inspect, table
from sqlalchemy.sql.expression import TableClause
from sqlalchemy.ext.asyncio import AsyncEngine

from storefront.database.models import Base, Product

logger = structlog.get_logger(__name__)

# Columns every products table has had since the first release
BASE_PRODUCT_COLUMNS = frozenset({"id", "name", "description", "price", "stock", "created_at"})
OPTIONAL_PRODUCT_COLUMNS = frozenset({"cost_price", "priority", "images", "image_url", "updated_at"})


@dataclass(frozen=True)
class SchemaCapabilities:
    """What the connected store actually supports"""
    tables: FrozenSet[str]
    product_columns: FrozenSet[str]

    @classmethod
    def full(cls) -> "SchemaCapabilities":
        """Capabilities of a schema created from the current models"""
        return cls(
            tables=frozenset(Base.metadata.tables),
            product_columns=frozenset(c.name for c in Product.__table__.columns),
        )

    def has_table(self, name: str) -> bool:
        return name in self.tables

    def has_product_column(self, name: str) -> bool:
        return name in self.product_columns

    @property
    def has_priority(self) -> bool:
        return self.has_product_column("priority")

    @property
    def has_cost_price(self) -> bool:
        return self.has_product_column("cost_price")

    @property
    def has_images(self) -> bool:
        return self.has_product_column("images")

    @property
    def has_image_url(self) -> bool:
        return self.has_product_column("image_url")

    @property
    def has_delivery_charges(self) -> bool:
        return self.has_table("delivery_charges")

    @property
    def missing_product_columns(self) -> FrozenSet[str]:
        return OPTIONAL_PRODUCT_COLUMNS - self.product_columns

    def product_table(self) -> TableClause:
        """
        Lightweight products table restricted to the supported columns.

        Carries the column types of the full model but none of its
        defaults, so inserts and updates never mention a missing column.
        """
        return table(
            Product.__tablename__,
            *[column(c.name, c.type) for c in Product.__table__.columns if c.name in self.product_columns],
        )

    def writable_product_values(self, values: Dict[str, Any]) -> Dict[str, Any]:
        """Drop values for columns this store does not have"""
        dropped = [key for key in values if key not in self.product_columns]
        if dropped:
            logger.debug("Dropping unsupported product columns", columns=dropped)
        return {key: value for key, value in values.items() if key in self.product_columns}


def _inspect_schema(sync_conn) -> SchemaCapabilities:
    inspector = inspect(sync_conn)
    tables = frozenset(inspector.get_table_names())
    product_columns: FrozenSet[str] = frozenset()
    if "products" in tables:
        product_columns = frozenset(col["name"] for col in inspector.get_columns("products"))
    return SchemaCapabilities(tables=tables, product_columns=product_columns)


async def detect_capabilities(engine: AsyncEngine) -> SchemaCapabilities:
    """
    Inspect the live schema.

    Returns:
        SchemaCapabilities describing the tables and product columns present
    """
    async with engine.connect() as conn:
        capabilities = await conn.run_sync(_inspect_schema)

    missing_base = BASE_PRODUCT_COLUMNS - capabilities.product_columns
    if missing_base:
        logger.error("Products table is missing required columns", missing=sorted(missing_base))

    if capabilities.missing_product_columns:
        logger.warning(
            "Products table is missing optional columns, using reduced projection",
            missing=sorted(capabilities.missing_product_columns),
        )
    if not capabilities.has_delivery_charges:
        logger.warning("delivery_charges table not found, default fees will be used")

    return capabilities
