"""
Conversion Sink

Best-effort forwarding of storefront events (PageView, Search, ViewContent,
AddToCart) to a third-party conversion endpoint. Failures are logged and
never reach the caller.
"""

import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx
import structlog

from storefront.config import get_settings
from storefront.config.settings import TrackingSettings
from storefront.database.models import ActivityType

logger = structlog.get_logger(__name__)

# Activity kinds forwarded to the conversion endpoint, with their event names
CONVERSION_EVENTS: Dict[ActivityType, str] = {
    ActivityType.PAGE_VIEW: "PageView",
    ActivityType.SEARCH: "Search",
    ActivityType.PRODUCT_VIEW: "ViewContent",
    ActivityType.ADD_TO_CART: "AddToCart",
}


class ConversionSink(ABC):
    """Outbound conversion tracking port"""

    @abstractmethod
    async def send(self, event_name: str, params: Dict[str, Any], session_id: Optional[str] = None) -> bool:
        """Forward one event; returns False when it was not delivered"""

    async def close(self) -> None:
        pass


class NullConversionSink(ConversionSink):
    """Used when no conversion endpoint is configured"""

    async def send(self, event_name: str, params: Dict[str, Any], session_id: Optional[str] = None) -> bool:
        return False


class HttpConversionSink(ConversionSink):
    """
    POSTs events to the configured conversion API.

    Example:
        sink = HttpConversionSink(endpoint, pixel_id="123", access_token="...")
        await sink.send("AddToCart", {"content_ids": [pid], "value": 450})
    """

    def __init__(
        self,
        endpoint: str,
        pixel_id: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout: float = 3.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.endpoint = endpoint
        self.pixel_id = pixel_id
        self._access_token = access_token
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def _payload(self, event_name: str, params: Dict[str, Any], session_id: Optional[str]) -> Dict[str, Any]:
        event: Dict[str, Any] = {
            "event_name": event_name,
            "event_time": int(time.time()),
            "action_source": "website",
            "custom_data": params,
        }
        if session_id:
            event["user_data"] = {"external_id": session_id}
        payload: Dict[str, Any] = {"data": [event]}
        if self.pixel_id:
            payload["pixel_id"] = self.pixel_id
        return payload

    async def send(self, event_name: str, params: Dict[str, Any], session_id: Optional[str] = None) -> bool:
        query = {"access_token": self._access_token} if self._access_token else None
        try:
            response = await self._client.post(
                self.endpoint,
                json=self._payload(event_name, params, session_id),
                params=query,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Conversion event not delivered", event_name=event_name, error=str(e))
            return False

        logger.debug("Conversion event delivered", event_name=event_name)
        return True

    async def close(self) -> None:
        await self._client.aclose()


def create_conversion_sink(settings: Optional[TrackingSettings] = None) -> ConversionSink:
    tracking = settings or get_settings().tracking
    if not tracking.conversion_endpoint:
        logger.info("Conversion forwarding disabled, no endpoint configured")
        return NullConversionSink()

    return HttpConversionSink(
        tracking.conversion_endpoint,
        pixel_id=tracking.pixel_id,
        access_token=tracking.access_token.get_secret_value() if tracking.access_token else None,
        timeout=tracking.timeout_seconds,
    )
