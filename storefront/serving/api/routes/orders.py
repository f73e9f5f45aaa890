"""
Orders API Endpoints

Checkout for the storefront and the back-office order book with status
transitions.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict

from storefront.database.models import DeliveryZone, Order, OrderStatus
from storefront.orders.reconciliation import AdjustmentOutcome, TransitionResult
from storefront.orders.store import OrderDraft
from storefront.serving.api.dependencies import AdminOnly, get_services
from storefront.serving.services import Services

router = APIRouter()


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class OrderItemResponse(BaseModel):
    id: UUID
    product_id: Optional[UUID] = None
    product_name: Optional[str] = None
    quantity: int
    price: float

    model_config = ConfigDict(from_attributes=True)


class OrderResponse(BaseModel):
    """Order with its line snapshots"""
    id: UUID
    customer_name: str
    phone: str
    address: str
    delivery_zone: DeliveryZone
    delivery_charge: float
    total_amount: float
    status: OrderStatus
    created_at: datetime
    updated_at: Optional[datetime] = None
    items: List[OrderItemResponse]

    model_config = ConfigDict(from_attributes=True)


class OrderListResponse(BaseModel):
    items: List[OrderResponse]
    total: int


class StatusChange(BaseModel):
    """Operator status change; previous_status is what the operator saw"""
    status: OrderStatus
    previous_status: Optional[OrderStatus] = None


class AdjustmentResponse(BaseModel):
    adjustment_id: int
    product_id: Optional[UUID] = None
    kind: str
    quantity: int
    outcome: str
    stock_before: Optional[int] = None
    stock_after: Optional[int] = None
    error: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class TransitionResponse(BaseModel):
    order_id: UUID
    previous_status: OrderStatus
    new_status: OrderStatus
    stock_action: str
    fully_applied: bool
    adjustments: List[AdjustmentResponse]


class ReplayResponse(BaseModel):
    processed: int
    adjustments: List[AdjustmentResponse]


def _order(order: Order) -> OrderResponse:
    return OrderResponse.model_validate(order)


def _adjustments(outcomes: List[AdjustmentOutcome]) -> List[AdjustmentResponse]:
    return [AdjustmentResponse.model_validate(o) for o in outcomes]


def _transition(result: TransitionResult) -> TransitionResponse:
    return TransitionResponse(
        order_id=result.order_id,
        previous_status=result.previous_status,
        new_status=result.new_status,
        stock_action=result.stock_action,
        fully_applied=result.fully_applied,
        adjustments=_adjustments(result.adjustments),
    )


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def place_order(
    draft: OrderDraft,
    services: Services = Depends(get_services),
) -> OrderResponse:
    """Checkout: snapshot prices, add the zone fee and store the order"""
    return _order(await services.orders.place(draft))


@router.get("", response_model=OrderListResponse, dependencies=[AdminOnly])
async def list_orders(
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    services: Services = Depends(get_services),
) -> OrderListResponse:
    orders = await services.orders.list_orders(order_status)
    return OrderListResponse(items=[_order(o) for o in orders], total=len(orders))


@router.post("/reconciliation/replay", response_model=ReplayResponse, dependencies=[AdminOnly])
async def replay_adjustments(
    services: Services = Depends(get_services),
) -> ReplayResponse:
    """Re-apply stock adjustments left pending by earlier failures"""
    outcomes = await services.engine.replay_pending()
    return ReplayResponse(processed=len(outcomes), adjustments=_adjustments(outcomes))


@router.get("/{order_id}", response_model=OrderResponse, dependencies=[AdminOnly])
async def get_order(
    order_id: UUID,
    services: Services = Depends(get_services),
) -> OrderResponse:
    return _order(await services.orders.get_order(order_id))


@router.patch("/{order_id}/status", response_model=TransitionResponse, dependencies=[AdminOnly])
async def change_status(
    order_id: UUID,
    change: StatusChange,
    services: Services = Depends(get_services),
) -> TransitionResponse:
    """
    Move an order through its lifecycle.

    Stock is reconciled on the way; per-line failures show up in
    `adjustments` and never undo the status change.
    """
    result = await services.engine.transition(order_id, change.status, change.previous_status)
    return _transition(result)
