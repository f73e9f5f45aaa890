"""
Products API Endpoints

Public catalog listing and the back-office product form.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, Request, status
from pydantic import BaseModel, ConfigDict, Field

from storefront.catalog.media import media_path, validate_media
from storefront.catalog.repository import ProductRecord, parse_product_form
from storefront.catalog.view import DEFAULT_SORT, build_catalog_view
from storefront.serving.api.dependencies import AdminOnly, get_services
from storefront.serving.services import Services

router = APIRouter()


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class ProductResponse(BaseModel):
    """Product as shown in the catalog and the admin form"""
    id: UUID
    name: str
    description: Optional[str] = None
    price: float
    cost_price: Optional[float] = None
    stock: int
    priority: int
    images: List[str]
    image_url: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CatalogPageResponse(BaseModel):
    """One page of the public catalog"""
    items: List[ProductResponse]
    page: int
    total_pages: int
    total_items: int
    sort: str
    search: str


class StockUpdate(BaseModel):
    stock: int = Field(ge=0)


def _product(record: ProductRecord) -> ProductResponse:
    return ProductResponse.model_validate(record)


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("", response_model=CatalogPageResponse)
async def list_catalog(
    sort: str = Query(DEFAULT_SORT, description="priority, price-low, price-high, name-asc, name-desc, newest, oldest"),
    search: str = Query("", max_length=200),
    page: int = Query(1),
    services: Services = Depends(get_services),
) -> CatalogPageResponse:
    """
    Public catalog page.

    Out-of-range pages fall back to page 1.
    """
    products = await services.products.list_products()
    view = build_catalog_view(products, sort_key=sort, search=search, page=page)
    return CatalogPageResponse(
        items=[_product(p) for p in view.items],
        page=view.page,
        total_pages=view.total_pages,
        total_items=view.total_items,
        sort=view.sort_key,
        search=view.search,
    )


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: UUID,
    services: Services = Depends(get_services),
) -> ProductResponse:
    return _product(await services.products.get_product(product_id))


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED, dependencies=[AdminOnly])
async def create_product(
    payload: Dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
) -> ProductResponse:
    form = parse_product_form(payload)
    return _product(await services.products.create_product(form))


@router.put("/{product_id}", response_model=ProductResponse, dependencies=[AdminOnly])
async def update_product(
    product_id: UUID,
    payload: Dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
) -> ProductResponse:
    form = parse_product_form(payload)
    return _product(await services.products.update_product(product_id, form))


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[AdminOnly])
async def delete_product(
    product_id: UUID,
    services: Services = Depends(get_services),
) -> None:
    await services.products.delete_product(product_id)


@router.put("/{product_id}/stock", response_model=ProductResponse, dependencies=[AdminOnly])
async def set_stock(
    product_id: UUID,
    update: StockUpdate,
    services: Services = Depends(get_services),
) -> ProductResponse:
    """Direct operator stock edit (bypasses reconciliation)"""
    await services.ledger.set_stock(product_id, update.stock)
    return _product(await services.products.get_product(product_id))


@router.post("/{product_id}/media", response_model=ProductResponse, dependencies=[AdminOnly])
async def upload_media(
    product_id: UUID,
    request: Request,
    filename: str = Query("upload", max_length=200),
    services: Services = Depends(get_services),
) -> ProductResponse:
    """
    Attach an image or video to a product.

    The request body is the raw file; its Content-Type decides the media
    kind and size limit.
    """
    await services.products.check_media_slot(product_id)
    content = await request.body()
    content_type = request.headers.get("content-type", "")
    validate_media(content_type, len(content))

    url = await services.media.upload(media_path(product_id, filename), content, content_type)
    return _product(await services.products.add_media(product_id, url))
