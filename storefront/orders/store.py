"""
Order Store

Checkout (order creation with price snapshots and the zone fee) and order
reads for the back office. Status writes happen inside the reconciliation
engine's transaction through set_status().
"""

import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.catalog.repository import ProductRepository
from storefront.database.connection import session_scope
from storefront.database.models import DeliveryZone, Order, OrderItem, OrderStatus, utcnow
from storefront.errors import NotFoundError, ValidationFailedError
from storefront.orders.delivery import DeliveryFees
from storefront.realtime.feed import ORDERS_CHANNEL, ChangeType
from storefront.realtime.hub import ChangeHub

logger = structlog.get_logger(__name__)


# =============================================================================
# CHECKOUT INPUT
# =============================================================================

class OrderLineInput(BaseModel):
    product_id: uuid.UUID
    quantity: int = Field(gt=0)


class OrderDraft(BaseModel):
    """Checkout submission"""
    customer_name: str = Field(min_length=1, max_length=200)
    phone: str = Field(min_length=1, max_length=50)
    address: str = Field(min_length=1)
    delivery_zone: DeliveryZone
    items: List[OrderLineInput] = Field(min_length=1)

    @field_validator("customer_name", "phone", "address", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v


LineSpec = Union[OrderLineInput, Tuple[Any, int], Dict[str, Any]]


def _line(entry: LineSpec) -> Any:
    if isinstance(entry, tuple):
        product_id, quantity = entry
        return {"product_id": product_id, "quantity": quantity}
    return entry


def order_record(order: Order) -> Dict[str, Any]:
    """Row payload published on the orders channel"""
    return {
        "id": str(order.id),
        "customer_name": order.customer_name,
        "status": order.status.value,
        "total_amount": str(order.total_amount),
        "delivery_zone": order.delivery_zone.value,
        "created_at": order.created_at.isoformat() if order.created_at else None,
    }


def parse_status(value: Union[str, OrderStatus]) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationFailedError(
            f"Unknown order status: {value}",
            detail={"allowed": [s.value for s in OrderStatus]},
        ) from None


class OrderStore:
    """
    Orders and their line items.

    Example:
        store = OrderStore(session_factory, products, fees, hub)
        order = await store.create_order(
            "Rahim", "01700000000", "Road 5, Dhanmondi", "inside_dhaka",
            items=[(product_id, 2)],
        )
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        products: ProductRepository,
        fees: DeliveryFees,
        hub: Optional[ChangeHub] = None,
    ):
        self._session_factory = session_factory
        self._products = products
        self._fees = fees
        self._hub = hub

    async def create_order(
        self,
        customer_name: str,
        phone: str,
        address: str,
        delivery_zone: Union[str, DeliveryZone],
        items: Sequence[LineSpec],
    ) -> Order:
        """
        Place an order.

        Unit prices and names are copied from the catalog at this moment.
        Stock is not checked here; reconciliation corrects it when the order
        is confirmed.
        """
        try:
            draft = OrderDraft.model_validate({
                "customer_name": customer_name,
                "phone": phone,
                "address": address,
                "delivery_zone": delivery_zone,
                "items": [_line(entry) for entry in items],
            })
        except ValidationError as e:
            fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
            raise ValidationFailedError(
                f"Invalid order fields: {', '.join(fields)}",
                detail={"fields": fields},
            ) from e

        return await self.place(draft)

    async def place(self, draft: OrderDraft) -> Order:
        product_ids = list(dict.fromkeys(line.product_id for line in draft.items))
        catalog = await self._products.get_many(product_ids)
        missing = [str(pid) for pid in product_ids if pid not in catalog]
        if missing:
            raise ValidationFailedError("Some products are no longer available", detail={"product_ids": missing})

        fee = await self._fees.get_fee(draft.delivery_zone)

        order = Order(
            id=uuid.uuid4(),
            customer_name=draft.customer_name,
            phone=draft.phone,
            address=draft.address,
            delivery_zone=draft.delivery_zone,
            delivery_charge=fee,
            status=OrderStatus.PENDING,
            created_at=utcnow(),
        )
        subtotal = Decimal("0")
        for number, line in enumerate(draft.items, start=1):
            product = catalog[line.product_id]
            subtotal += product.price * line.quantity
            order.items.append(OrderItem(
                id=uuid.uuid4(),
                line_number=number,
                product_id=product.id,
                product_name=product.name,
                quantity=line.quantity,
                price=product.price,
            ))
        order.total_amount = subtotal + fee

        async with session_scope(self._session_factory) as db:
            db.add(order)

        logger.info(
            "Order placed",
            order_id=str(order.id),
            items=len(order.items),
            total_amount=str(order.total_amount),
            delivery_zone=order.delivery_zone.value,
        )

        if self._hub is not None:
            await self._hub.publish(ORDERS_CHANNEL, ChangeType.INSERT, order_record(order))
        return order

    async def list_orders(self, status: Optional[Union[str, OrderStatus]] = None) -> List[Order]:
        """All orders with their items, newest first"""
        query = select(Order).order_by(Order.created_at.desc())
        if status is not None:
            query = query.where(Order.status == parse_status(status))

        async with session_scope(self._session_factory) as db:
            result = await db.execute(query)
            return list(result.scalars().all())

    async def get_order(self, order_id: uuid.UUID) -> Order:
        async with session_scope(self._session_factory) as db:
            return await self.get_order_in(db, order_id)

    async def get_order_in(self, db: AsyncSession, order_id: uuid.UUID) -> Order:
        order = await db.get(Order, order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found", detail={"order_id": str(order_id)})
        return order

    async def set_status(self, db: AsyncSession, order_id: uuid.UUID, status: Union[str, OrderStatus]) -> Order:
        """Write the status inside the caller's transaction"""
        order = await self.get_order_in(db, order_id)
        order.status = parse_status(status)
        # a same-status save still records the write
        order.updated_at = utcnow()
        return order
