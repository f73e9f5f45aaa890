"""
Activity API Endpoints

Visitor tracking intake and the operator's activity view.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query, Request, Response, status
from pydantic import BaseModel, ConfigDict, Field

from storefront.analytics.repository import ALL_KINDS
from storefront.analytics.session import client_fingerprint
from storefront.database.models import ActivityType
from storefront.errors import StorefrontError
from storefront.serving.api.dependencies import AdminOnly, get_services
from storefront.serving.services import Services

logger = structlog.get_logger(__name__)
router = APIRouter()


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class ActivityIn(BaseModel):
    """One visitor action reported by the storefront"""
    activity_type: ActivityType
    page_path: Optional[str] = Field(default=None, max_length=500)
    product_id: Optional[UUID] = None
    product_name: Optional[str] = Field(default=None, max_length=200)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class TrackingAck(BaseModel):
    recorded: bool
    session_id: str


class ActivityResponse(BaseModel):
    id: UUID
    session_id: str
    activity_type: ActivityType
    product_id: Optional[UUID] = None
    product_name: Optional[str] = None
    page_path: Optional[str] = None
    metadata: Dict[str, Any]
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ActivityCountersResponse(BaseModel):
    page_views: int
    product_clicks: int
    add_to_cart: int
    unique_sessions: int

    model_config = ConfigDict(from_attributes=True)


class ActivityPageResponse(BaseModel):
    items: List[ActivityResponse]
    total_count: int
    page: int
    total_pages: int
    kind: str
    search: str
    counters: ActivityCountersResponse


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("", response_model=TrackingAck, status_code=status.HTTP_202_ACCEPTED)
async def track_activity(
    event: ActivityIn,
    request: Request,
    response: Response,
    services: Services = Depends(get_services),
) -> TrackingAck:
    """
    Record a visitor action.

    Tracking never breaks the storefront: a failed write is logged and
    acknowledged with recorded=false.
    """
    session_id = services.sessions.resolve(request)
    response.set_cookie(services.sessions.cookie_name, session_id, httponly=True, samesite="lax")

    user_agent, ip_address = client_fingerprint(request)
    try:
        await services.recorder.record(
            session_id=session_id,
            activity_type=event.activity_type,
            page_path=event.page_path or request.headers.get("referer") or "/",
            product_id=event.product_id,
            product_name=event.product_name,
            metadata=event.metadata,
            user_agent=user_agent,
            ip_address=ip_address,
        )
    except StorefrontError as e:
        logger.warning("Activity not recorded", activity_type=event.activity_type.value, error=e.message)
        return TrackingAck(recorded=False, session_id=session_id)

    return TrackingAck(recorded=True, session_id=session_id)


@router.get("", response_model=ActivityPageResponse, dependencies=[AdminOnly])
async def query_activity(
    kind: str = Query(ALL_KINDS, description="Activity type or 'all'"),
    search: str = Query("", max_length=200),
    page: int = Query(1, ge=1),
    services: Services = Depends(get_services),
) -> ActivityPageResponse:
    result = await services.aggregator.query(kind=kind, search=search, page=page)
    return ActivityPageResponse(
        items=[ActivityResponse.model_validate(r) for r in result.items],
        total_count=result.total_count,
        page=result.page,
        total_pages=result.total_pages,
        kind=result.kind,
        search=result.search,
        counters=ActivityCountersResponse.model_validate(result.counters),
    )
