"""
Product Repository and Stock Ledger

Reads and writes the products table through the schema capability
descriptor, so a store running an older, narrower products table keeps
working with defaults filled in (priority 999, no cost price, media derived
from the legacy image_url column).
"""

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator
from sqlalchemy import delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.database.capabilities import SchemaCapabilities
from storefront.database.connection import session_scope
from storefront.database.models import utcnow
from storefront.errors import NotFoundError, SchemaMismatchError, ValidationFailedError

logger = structlog.get_logger(__name__)

DEFAULT_PRIORITY = 999
CATALOG_CACHE_KEY = "products"


def normalize_media(images: Any, image_url: Optional[str] = None) -> List[str]:
    """
    Normalize stored media into an ordered list of URLs.

    Accepts a list, a JSON-encoded list, or a bare string. Falls back to the
    legacy single image when no usable entries remain.
    """
    entries: List[Any] = []
    if isinstance(images, str):
        try:
            parsed = json.loads(images)
        except ValueError:
            parsed = images
        entries = parsed if isinstance(parsed, list) else [parsed]
    elif isinstance(images, (list, tuple)):
        entries = list(images)

    media = [entry.strip() for entry in entries if isinstance(entry, str) and entry.strip()]
    if not media and image_url and image_url.strip():
        media = [image_url.strip()]
    return media


@dataclass
class ProductRecord:
    """A product as seen by the catalog and the admin back office"""
    id: uuid.UUID
    name: str
    price: Decimal
    stock: int
    description: Optional[str] = None
    cost_price: Optional[Decimal] = None
    priority: int = DEFAULT_PRIORITY
    images: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None

    @property
    def image_url(self) -> Optional[str]:
        return self.images[0] if self.images else None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ProductRecord":
        priority = row.get("priority")
        stock = row.get("stock")
        return cls(
            id=row["id"],
            name=row["name"],
            description=row.get("description"),
            price=Decimal(str(row["price"])),
            cost_price=Decimal(str(row["cost_price"])) if row.get("cost_price") is not None else None,
            stock=int(stock) if stock is not None else 0,
            priority=int(priority) if priority is not None else DEFAULT_PRIORITY,
            images=normalize_media(row.get("images"), row.get("image_url")),
            created_at=row.get("created_at"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe representation (used for caching)"""
        return {
            "id": str(self.id),
            "name": self.name,
            "description": self.description,
            "price": str(self.price),
            "cost_price": str(self.cost_price) if self.cost_price is not None else None,
            "stock": self.stock,
            "priority": self.priority,
            "images": list(self.images),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductRecord":
        created_at = data.get("created_at")
        return cls.from_row({
            **data,
            "id": uuid.UUID(data["id"]),
            "created_at": datetime.fromisoformat(created_at) if created_at else None,
        })


class ProductInput(BaseModel):
    """
    Product form submission.

    Non-numeric price, cost price, stock or priority is rejected here,
    before anything is written.
    """
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    price: Decimal = Field(ge=0)
    cost_price: Optional[Decimal] = Field(default=None, ge=0)
    stock: int = Field(ge=0)
    priority: int = DEFAULT_PRIORITY
    images: List[str] = Field(default_factory=list)
    image_url: Optional[str] = None

    @field_validator("description", "cost_price", "image_url", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("priority", mode="before")
    @classmethod
    def blank_priority(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_PRIORITY
        return v

    def to_values(self) -> Dict[str, Any]:
        media = normalize_media(self.images, self.image_url)
        return {
            "name": self.name.strip(),
            "description": self.description,
            "price": self.price,
            "cost_price": self.cost_price,
            "stock": self.stock,
            "priority": self.priority,
            "images": media,
            # legacy readers only look at the single image column
            "image_url": media[0] if media else None,
        }


def parse_product_form(data: Dict[str, Any]) -> ProductInput:
    """Validate raw form data, raising ValidationFailedError on bad input"""
    try:
        return ProductInput.model_validate(data)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise ValidationFailedError(
            f"Invalid product fields: {', '.join(fields)}",
            detail={"fields": fields},
        ) from e


class ProductRepository:
    """
    Products table access.

    Example:
        repo = ProductRepository(session_factory, capabilities, cache=catalog_cache)
        products = await repo.list_products()
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        capabilities: SchemaCapabilities,
        cache=None,
    ):
        self._session_factory = session_factory
        self._capabilities = capabilities
        self._cache = cache
        self._table = capabilities.product_table()

    @property
    def capabilities(self) -> SchemaCapabilities:
        return self._capabilities

    def _ordered_select(self):
        t = self._table
        query = select(t)
        if self._capabilities.has_priority:
            query = query.order_by(t.c.priority.asc(), t.c.created_at.desc())
        else:
            query = query.order_by(t.c.created_at.desc())
        return query

    async def list_products(self, fresh: bool = False) -> List[ProductRecord]:
        """
        List all products, priority first then newest.

        Args:
            fresh: Bypass the catalog cache
        """
        if self._cache is not None and not fresh:
            cached = await self._cache.get(CATALOG_CACHE_KEY)
            if cached is not None:
                return [ProductRecord.from_dict(item) for item in cached]

        async with session_scope(self._session_factory) as db:
            result = await db.execute(self._ordered_select())
            products = [ProductRecord.from_row(dict(row._mapping)) for row in result]

        if self._cache is not None:
            await self._cache.set(CATALOG_CACHE_KEY, [p.to_dict() for p in products])

        logger.debug("Products loaded", count=len(products), fresh=fresh)
        return products

    async def get_product(self, product_id: uuid.UUID) -> ProductRecord:
        t = self._table
        async with session_scope(self._session_factory) as db:
            result = await db.execute(select(t).where(t.c.id == product_id))
            row = result.first()
        if row is None:
            raise NotFoundError(f"Product {product_id} not found", detail={"product_id": str(product_id)})
        return ProductRecord.from_row(dict(row._mapping))

    async def get_many(self, product_ids: List[uuid.UUID]) -> Dict[uuid.UUID, ProductRecord]:
        if not product_ids:
            return {}
        t = self._table
        async with session_scope(self._session_factory) as db:
            result = await db.execute(select(t).where(t.c.id.in_(product_ids)))
            return {row.id: ProductRecord.from_row(dict(row._mapping)) for row in result}

    async def create_product(self, data: ProductInput) -> ProductRecord:
        product_id = uuid.uuid4()
        now = utcnow()
        values = {**data.to_values(), "id": product_id, "created_at": now, "updated_at": now}
        values = self._capabilities.writable_product_values(values)

        async with session_scope(self._session_factory) as db:
            await db.execute(insert(self._table).values(**values))

        logger.info("Product created", product_id=str(product_id), name=data.name)
        await self.invalidate_cache()
        return await self.get_product(product_id)

    async def update_product(self, product_id: uuid.UUID, data: ProductInput) -> ProductRecord:
        t = self._table
        values = self._capabilities.writable_product_values({**data.to_values(), "updated_at": utcnow()})

        async with session_scope(self._session_factory) as db:
            result = await db.execute(update(t).where(t.c.id == product_id).values(**values))
            if result.rowcount == 0:
                raise NotFoundError(f"Product {product_id} not found", detail={"product_id": str(product_id)})

        logger.info("Product updated", product_id=str(product_id))
        await self.invalidate_cache()
        return await self.get_product(product_id)

    async def check_media_slot(self, product_id: uuid.UUID) -> ProductRecord:
        """
        Make sure another media URL can be stored for the product.

        Without an images column only the single image_url slot exists: it
        takes one upload while empty, and none at all when the store has no
        image column.
        """
        product = await self.get_product(product_id)
        capabilities = self._capabilities
        if not capabilities.has_images and (product.images or not capabilities.has_image_url):
            raise SchemaMismatchError(
                "This store cannot hold another image for the product",
                detail={
                    "product_id": str(product_id),
                    "missing_columns": sorted({"images", "image_url"} - capabilities.product_columns),
                },
            )
        return product

    async def add_media(self, product_id: uuid.UUID, url: str) -> ProductRecord:
        """Append a media URL to the product's ordered media list"""
        product = await self.check_media_slot(product_id)
        media = product.images + [url]
        values = self._capabilities.writable_product_values({
            "images": media,
            "image_url": media[0],
            "updated_at": utcnow(),
        })
        t = self._table
        async with session_scope(self._session_factory) as db:
            await db.execute(update(t).where(t.c.id == product_id).values(**values))

        await self.invalidate_cache()
        return await self.get_product(product_id)

    async def delete_product(self, product_id: uuid.UUID) -> None:
        t = self._table
        async with session_scope(self._session_factory) as db:
            result = await db.execute(delete(t).where(t.c.id == product_id))
            if result.rowcount == 0:
                raise NotFoundError(f"Product {product_id} not found", detail={"product_id": str(product_id)})

        logger.info("Product deleted", product_id=str(product_id))
        await self.invalidate_cache()

    async def invalidate_cache(self) -> None:
        if self._cache is not None:
            await self._cache.delete(CATALOG_CACHE_KEY)


class StockLedger:
    """
    Per-product available quantity.

    The *_in variants run inside a caller's transaction; the plain variants
    each commit independently.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        capabilities: SchemaCapabilities,
        cache=None,
    ):
        self._session_factory = session_factory
        self._capabilities = capabilities
        self._cache = cache
        self._table = capabilities.product_table()

    async def get_stock_in(self, db: AsyncSession, product_id: uuid.UUID) -> int:
        t = self._table
        result = await db.execute(select(t.c.stock).where(t.c.id == product_id))
        stock = result.scalar_one_or_none()
        if stock is None:
            raise NotFoundError(f"Product {product_id} not found", detail={"product_id": str(product_id)})
        return int(stock)

    async def set_stock_in(self, db: AsyncSession, product_id: uuid.UUID, value: int) -> None:
        if value < 0:
            raise ValidationFailedError("Stock cannot be negative", detail={"product_id": str(product_id)})
        t = self._table
        values = self._capabilities.writable_product_values({"stock": value, "updated_at": utcnow()})
        result = await db.execute(update(t).where(t.c.id == product_id).values(**values))
        if result.rowcount == 0:
            raise NotFoundError(f"Product {product_id} not found", detail={"product_id": str(product_id)})

    async def get_stock(self, product_id: uuid.UUID) -> int:
        async with session_scope(self._session_factory) as db:
            return await self.get_stock_in(db, product_id)

    async def set_stock(self, product_id: uuid.UUID, value: int) -> None:
        async with session_scope(self._session_factory) as db:
            await self.set_stock_in(db, product_id, value)
        await self.invalidate_cache()

    async def invalidate_cache(self) -> None:
        if self._cache is not None:
            await self._cache.delete(CATALOG_CACHE_KEY)
