"""
Back-Office Endpoints

Live view state (new-order counter, notifications) and the sales dashboard.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from storefront.serving.api.dependencies import AdminOnly, get_services
from storefront.serving.services import Services

router = APIRouter(dependencies=[AdminOnly])


class MonthlyPointResponse(BaseModel):
    month: int
    sales: float
    profit: float


class DashboardResponse(BaseModel):
    total_sales: float
    total_profit: float
    profit_margin_percent: float
    average_order_value: float
    total_orders: int
    pending_orders: int
    confirmed_orders: int
    delivered_orders: int
    cancelled_orders: int
    total_products: int
    low_stock_products: int
    month_sales: float
    year_sales: float
    monthly: List[MonthlyPointResponse]


@router.get("/live")
async def live_state(services: Services = Depends(get_services)) -> Dict[str, Any]:
    return services.live_view.snapshot()


@router.post("/live/acknowledge")
async def acknowledge_new_orders(services: Services = Depends(get_services)) -> Dict[str, int]:
    return {"acknowledged": services.live_view.acknowledge()}


@router.post("/live/refresh")
async def refresh_live_view(services: Services = Depends(get_services)) -> Dict[str, Any]:
    await services.live_view.refresh()
    return services.live_view.snapshot()


@router.get("/dashboard", response_model=DashboardResponse)
async def dashboard(services: Services = Depends(get_services)) -> DashboardResponse:
    stats = await services.dashboard.compute()
    return DashboardResponse(**stats.to_dict())
