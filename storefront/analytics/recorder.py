"""
Activity Recorder

Appends visitor events to the activity log, announces them on the
user_activity channel and forwards the conversion-relevant kinds.
"""

import uuid
from typing import Any, Dict, Optional, Union

import structlog
from prometheus_client import Counter

from storefront.analytics.conversions import CONVERSION_EVENTS, ConversionSink, NullConversionSink
from storefront.analytics.repository import ActivityRecord, ActivityRepository, parse_kind
from storefront.config import get_settings
from storefront.database.models import ActivityType, utcnow
from storefront.realtime.feed import ACTIVITY_CHANNEL, ChangeType
from storefront.realtime.hub import ChangeHub

logger = structlog.get_logger(__name__)

ACTIVITY_EVENTS_RECORDED = Counter(
    "storefront_activity_events_recorded_total",
    "Visitor activity events appended to the log",
    ["activity_type"],
)


class ActivityRecorder:
    """
    Record one visitor action.

    Store failures propagate to the caller; the conversion sink and the
    change notification are best-effort.
    """

    def __init__(
        self,
        repository: ActivityRepository,
        hub: Optional[ChangeHub] = None,
        sink: Optional[ConversionSink] = None,
    ):
        self._repository = repository
        self._hub = hub
        self._sink = sink or NullConversionSink()

    async def record(
        self,
        session_id: str,
        activity_type: Union[str, ActivityType],
        page_path: str = "/",
        product_id: Optional[uuid.UUID] = None,
        product_name: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> ActivityRecord:
        kind = parse_kind(activity_type)
        event_metadata = {**(metadata or {}), "timestamp": utcnow().isoformat()}

        record = await self._repository.append(
            session_id=session_id,
            activity_type=kind,
            page_path=page_path or "/",
            product_id=product_id,
            product_name=product_name,
            metadata=event_metadata,
            user_agent=user_agent or "Unknown",
            ip_address=ip_address or "Unknown",
        )
        ACTIVITY_EVENTS_RECORDED.labels(activity_type=kind.value).inc()
        logger.debug("Activity recorded", activity_type=kind.value, session_id=session_id, page_path=record.page_path)

        if self._hub is not None:
            await self._hub.publish(ACTIVITY_CHANNEL, ChangeType.INSERT, record.to_record())

        event_name = CONVERSION_EVENTS.get(kind)
        if event_name is not None:
            await self._sink.send(event_name, self._conversion_params(record), session_id=session_id)

        return record

    @staticmethod
    def _conversion_params(record: ActivityRecord) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        if record.product_id:
            params["content_ids"] = [str(record.product_id)]
            params["content_type"] = "product"
        if record.product_name:
            params["content_name"] = record.product_name
        search_query = record.metadata.get("search_query")
        if search_query:
            params["search_string"] = search_query
        price = record.metadata.get("price")
        if price is not None:
            quantity = record.metadata.get("quantity") or 1
            try:
                value = float(price) * int(quantity)
            except (TypeError, ValueError):
                logger.debug("Non-numeric price left out of conversion value", price=price)
            else:
                params["value"] = value
                params["currency"] = get_settings().tracking.currency
        return params
