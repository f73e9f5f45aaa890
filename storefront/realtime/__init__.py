"""
Realtime Module

Change feed transports and the process-wide change hub. The admin live
view lives in storefront.realtime.listener and its boards in
storefront.realtime.boards.
"""
from .feed import (
    ACTIVITY_CHANNEL,
    ORDERS_CHANNEL,
    ChangeEvent,
    ChangeFeed,
    ChangeType,
    LocalChangeFeed,
    RedisChangeFeed,
)
from .hub import ChangeHub, Subscription

__all__ = [
    "ACTIVITY_CHANNEL",
    "ORDERS_CHANNEL",
    "ChangeEvent",
    "ChangeFeed",
    "ChangeType",
    "LocalChangeFeed",
    "RedisChangeFeed",
    "ChangeHub",
    "Subscription",
]
