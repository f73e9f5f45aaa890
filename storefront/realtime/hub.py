"""
Change Hub

One process-wide transport subscription per logical channel, multiplexed to
any number of in-process handlers. Admin views register handlers here
instead of opening their own channel subscription.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog
from prometheus_client import Counter

from storefront.realtime.feed import ChangeEvent, ChangeFeed, ChangeStream, ChangeType

logger = structlog.get_logger(__name__)

ChangeHandler = Callable[[ChangeEvent], Awaitable[None]]


# =============================================================================
# METRICS
# =============================================================================

CHANGE_EVENTS_PUBLISHED = Counter(
    "storefront_change_events_published_total",
    "Change events published to the feed",
    ["channel", "type", "status"],
)

CHANGE_EVENTS_DISPATCHED = Counter(
    "storefront_change_events_dispatched_total",
    "Change events delivered to in-process handlers",
    ["channel", "status"],
)


@dataclass
class _ChannelState:
    stream: ChangeStream
    pump: asyncio.Task
    handlers: List[ChangeHandler]


class Subscription:
    """Handle returned by ChangeHub.subscribe; close() detaches the handler"""

    def __init__(self, hub: "ChangeHub", channel: str, handler: ChangeHandler):
        self._hub = hub
        self.channel = channel
        self.handler = handler
        self.active = True

    async def close(self) -> None:
        if self.active:
            self.active = False
            await self._hub.unsubscribe(self.channel, self.handler)


class ChangeHub:
    """
    Publish/subscribe fan-out over a ChangeFeed.

    The transport subscription for a channel opens with its first handler
    and closes with its last. A failing handler is logged and never affects
    the others. When the stream ends (disconnect) the channel goes quiet;
    there is no reconnect beyond what the transport does itself.

    Example:
        hub = ChangeHub(LocalChangeFeed())
        sub = await hub.subscribe("orders", on_order_change)
        await hub.publish("orders", ChangeType.INSERT, {"id": "..."})
        await sub.close()
    """

    def __init__(self, feed: ChangeFeed):
        self.feed = feed
        self._channels: Dict[str, _ChannelState] = {}
        self._lock = asyncio.Lock()

    @property
    def transport(self) -> str:
        return self.feed.name

    def handler_count(self, channel: str) -> int:
        state = self._channels.get(channel)
        return len(state.handlers) if state else 0

    def is_listening(self, channel: str) -> bool:
        state = self._channels.get(channel)
        return state is not None and not state.pump.done()

    async def publish(self, channel: str, change_type: ChangeType, record: Dict[str, Any]) -> bool:
        """
        Publish a change notification. Fire-and-forget: a transport failure
        is logged and reported as False, never raised.
        """
        event = ChangeEvent(channel=channel, type=change_type, record=record)
        try:
            await self.feed.publish(channel, event)
        except Exception as e:
            logger.warning(
                "Change notification not delivered",
                channel=channel,
                type=change_type.value,
                error=str(e),
            )
            CHANGE_EVENTS_PUBLISHED.labels(channel=channel, type=change_type.value, status="error").inc()
            return False

        CHANGE_EVENTS_PUBLISHED.labels(channel=channel, type=change_type.value, status="success").inc()
        return True

    async def subscribe(self, channel: str, handler: ChangeHandler) -> Subscription:
        async with self._lock:
            state = self._channels.get(channel)
            if state is None or state.pump.done():
                if state is not None:
                    # stream ended earlier, reopen it for the new handler
                    await state.stream.aclose()
                stream = await self.feed.subscribe(channel)
                handlers = state.handlers if state else []
                pump = asyncio.create_task(self._pump(channel, stream), name=f"change-hub:{channel}")
                state = _ChannelState(stream=stream, pump=pump, handlers=handlers)
                self._channels[channel] = state
                logger.info("Change channel opened", channel=channel, transport=self.transport)
            state.handlers.append(handler)

        return Subscription(self, channel, handler)

    async def unsubscribe(self, channel: str, handler: ChangeHandler) -> None:
        async with self._lock:
            state = self._channels.get(channel)
            if state is None:
                return
            if handler in state.handlers:
                state.handlers.remove(handler)
            if state.handlers:
                return
            del self._channels[channel]

        await self._shutdown(channel, state)

    async def close(self) -> None:
        async with self._lock:
            channels = list(self._channels.items())
            self._channels.clear()

        for channel, state in channels:
            await self._shutdown(channel, state)

    async def _shutdown(self, channel: str, state: _ChannelState) -> None:
        state.pump.cancel()
        try:
            await state.pump
        except asyncio.CancelledError:
            pass
        await state.stream.aclose()
        logger.info("Change channel closed", channel=channel)

    async def _pump(self, channel: str, stream: ChangeStream) -> None:
        try:
            async for event in stream:
                await self.dispatch(channel, event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Change stream failed, live updates stopped", channel=channel, error=str(e))
            return

        logger.warning("Change stream ended, live updates stopped", channel=channel)

    async def dispatch(self, channel: str, event: ChangeEvent) -> None:
        state: Optional[_ChannelState] = self._channels.get(channel)
        if state is None:
            return

        for handler in list(state.handlers):
            try:
                await handler(event)
            except Exception as e:
                logger.exception(
                    "Change handler failed",
                    channel=channel,
                    type=event.type.value,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                    error=str(e),
                )
                CHANGE_EVENTS_DISPATCHED.labels(channel=channel, status="error").inc()
            else:
                CHANGE_EVENTS_DISPATCHED.labels(channel=channel, status="success").inc()
