"""
Database Models - Storefront Schema

This module defines the storefront data model:

Catalog:
- Product: sellable item with price, stock counter, display priority and media

Fulfillment:
- Order: customer order with a fixed total and a status lifecycle
- OrderItem: immutable price snapshot of one order line
- StockAdjustment: reconciliation outbox, one row per stock mutation
- DeliveryCharge: per-zone delivery surcharge

Analytics:
- UserActivity: append-only visitor event log
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, List
import uuid

from sqlalchemy import (
    JSON,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC"""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _enum_column(enum_cls: type, length: int = 30) -> SQLEnum:
    """Store enum values (not member names) as plain strings"""
    return SQLEnum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


JSONType = JSON().with_variant(JSONB(), "postgresql")


# =============================================================================
# ENUMERATIONS
# =============================================================================

class OrderStatus(str, Enum):
    """Order status lifecycle: pending -> confirmed -> delivered, cancelled is terminal"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# Statuses that mean the order's stock has been taken out of the ledger
FULFILLING_STATUSES = frozenset({OrderStatus.CONFIRMED, OrderStatus.DELIVERED})


class DeliveryZone(str, Enum):
    """Delivery zone classification"""
    INSIDE_DHAKA = "inside_dhaka"
    OUTSIDE_DHAKA = "outside_dhaka"


class ActivityType(str, Enum):
    """Visitor activity event kinds"""
    PAGE_VIEW = "page_view"
    PRODUCT_VIEW = "product_view"
    PRODUCT_CLICK = "product_click"
    ADD_TO_CART = "add_to_cart"
    REMOVE_FROM_CART = "remove_from_cart"
    ORDER_PLACED = "order_placed"
    SEARCH = "search"
    BUTTON_CLICK = "button_click"


class AdjustmentKind(str, Enum):
    """Direction of a stock adjustment"""
    DECREMENT = "decrement"
    RESTORE = "restore"


class AdjustmentStatus(str, Enum):
    """Outbox row state"""
    PENDING = "pending"
    APPLIED = "applied"
    SKIPPED = "skipped"    # product missing, never retried
    REVERSED = "reversed"  # applied decrement later restored
    VOID = "void"          # pending decrement dropped by a reversal


# =============================================================================
# CATALOG
# =============================================================================

class Product(Base):
    """
    Product Table

    Stock is a shared mutable counter. Order lifecycle decrements go through
    the reconciliation outbox; operator edits write it directly.
    """
    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)

    # Pricing
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    cost_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))

    # Inventory and display
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=999, server_default="999")

    # Media: ordered list of image/video URLs, image_url is the legacy single image
    images: Mapped[Optional[List[str]]] = mapped_column(JSONType)
    image_url: Mapped[Optional[str]] = mapped_column(String(2000))

    # Audit
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("ix_products_priority_created", "priority", "created_at"),
    )


# =============================================================================
# FULFILLMENT
# =============================================================================

class Order(Base):
    """
    Order Table

    The total is fixed at creation: sum of line items plus the zone fee.
    """
    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Customer
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[str] = mapped_column(String(50), nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False)

    # Delivery
    delivery_zone: Mapped[DeliveryZone] = mapped_column(_enum_column(DeliveryZone), nullable=False)
    delivery_charge: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0)

    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[OrderStatus] = mapped_column(
        _enum_column(OrderStatus), nullable=False, default=OrderStatus.PENDING
    )

    # Audit
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    items: Mapped[List["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.line_number",
    )

    __table_args__ = (
        Index("ix_orders_status", "status"),
        Index("ix_orders_created", "created_at"),
    )


class OrderItem(Base):
    """
    Order Item Table

    Immutable after creation; price is the unit price captured at order time.
    """
    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("products.id", ondelete="SET NULL")
    )
    product_name: Mapped[Optional[str]] = mapped_column(String(200))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    order: Mapped["Order"] = relationship(back_populates="items")

    __table_args__ = (
        Index("ix_order_items_order", "order_id"),
    )


class StockAdjustment(Base):
    """
    Stock Adjustment Outbox

    Written in the same transaction as the order status change; each row is
    applied in its own transaction and marked applied together with the
    stock write, so a replay can never apply it twice.
    """
    __tablename__ = "stock_adjustments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    kind: Mapped[AdjustmentKind] = mapped_column(_enum_column(AdjustmentKind), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    applied_quantity: Mapped[Optional[int]] = mapped_column(Integer)
    status: Mapped[AdjustmentStatus] = mapped_column(
        _enum_column(AdjustmentStatus), nullable=False, default=AdjustmentStatus.PENDING
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    applied_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_stock_adjustments_status", "status"),
        Index("ix_stock_adjustments_order", "order_id"),
    )


class DeliveryCharge(Base):
    """Delivery Charge Table - one row per zone"""
    __tablename__ = "delivery_charges"

    location_type: Mapped[str] = mapped_column(String(30), primary_key=True)
    charge: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


# =============================================================================
# ANALYTICS
# =============================================================================

class UserActivity(Base):
    """
    User Activity Table

    Append-only visitor event log; never updated or deleted by the core.
    """
    __tablename__ = "user_activity"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[str] = mapped_column(String(100), nullable=False)
    activity_type: Mapped[ActivityType] = mapped_column(_enum_column(ActivityType), nullable=False)

    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    product_name: Mapped[Optional[str]] = mapped_column(String(200))
    page_path: Mapped[Optional[str]] = mapped_column(String(500))

    # "metadata" is reserved on declarative classes
    event_metadata: Mapped[Optional[dict]] = mapped_column("metadata", JSONType)

    # Client fingerprint
    user_agent: Mapped[Optional[str]] = mapped_column(Text)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_user_activity_created", "created_at"),
        Index("ix_user_activity_type_created", "activity_type", "created_at"),
    )
