"""
Delivery Charge Endpoints
"""

from typing import Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from storefront.database.models import DeliveryZone
from storefront.serving.api.dependencies import AdminOnly, get_services
from storefront.serving.services import Services

router = APIRouter()


class FeeUpdate(BaseModel):
    charge: float = Field(ge=0)


class FeeResponse(BaseModel):
    zone: DeliveryZone
    charge: float


@router.get("", response_model=Dict[str, float])
async def get_delivery_charges(services: Services = Depends(get_services)) -> Dict[str, float]:
    fees = await services.fees.get_fees()
    return {zone: float(charge) for zone, charge in fees.items()}


@router.put("/{zone}", response_model=FeeResponse, dependencies=[AdminOnly])
async def set_delivery_charge(
    zone: DeliveryZone,
    update: FeeUpdate,
    services: Services = Depends(get_services),
) -> FeeResponse:
    charge = await services.fees.set_fee(zone, update.charge)
    return FeeResponse(zone=zone, charge=float(charge))
