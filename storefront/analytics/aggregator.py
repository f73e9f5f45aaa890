"""
Activity Aggregator

Turns the raw visitor event log into the operator's filtered, counted and
paginated activity view.

The store only applies the kind filter and returns the newest window
(1000 rows by default). Text search narrows that window and never reaches
older records; counters describe the filtered set, not the whole log.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Sequence

import structlog

from storefront.analytics.repository import ALL_KINDS, ActivityRecord, ActivityRepository, parse_kind_filter
from storefront.config import get_settings
from storefront.database.models import ActivityType, as_utc

logger = structlog.get_logger(__name__)

PAGE_SIZE = 10

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class ActivityCounters:
    page_views: int = 0
    product_clicks: int = 0
    add_to_cart: int = 0
    unique_sessions: int = 0


@dataclass
class ActivityPage:
    items: List[ActivityRecord]
    total_count: int
    page: int
    total_pages: int
    counters: ActivityCounters = field(default_factory=ActivityCounters)
    kind: str = ALL_KINDS
    search: str = ""


def matches_search(record: ActivityRecord, needle: str) -> bool:
    """Substring match over product name, page path, session and search query"""
    search_query = record.metadata.get("search_query") if record.metadata else None
    haystacks = (
        record.product_name,
        record.page_path,
        record.session_id,
        search_query if isinstance(search_query, str) else None,
    )
    return any(h and needle in h.casefold() for h in haystacks)


def count_activities(records: Sequence[ActivityRecord]) -> ActivityCounters:
    counters = ActivityCounters()
    sessions = set()
    for record in records:
        if record.activity_type == ActivityType.PAGE_VIEW:
            counters.page_views += 1
        elif record.activity_type == ActivityType.PRODUCT_CLICK:
            counters.product_clicks += 1
        elif record.activity_type == ActivityType.ADD_TO_CART:
            counters.add_to_cart += 1
        sessions.add(record.session_id)
    counters.unique_sessions = len(sessions)
    return counters


def aggregate_activities(
    records: Sequence[ActivityRecord],
    kind: Optional[str] = ALL_KINDS,
    search: str = "",
    page: int = 1,
    page_size: int = PAGE_SIZE,
) -> ActivityPage:
    """
    Filter, order, count and slice an activity window.

    An out-of-range page yields an empty slice; it is not an error.
    """
    activity_type = parse_kind_filter(kind)
    filtered = [r for r in records if activity_type is None or r.activity_type == activity_type]

    needle = (search or "").strip().casefold()
    if needle:
        filtered = [r for r in filtered if matches_search(r, needle)]

    filtered.sort(key=lambda r: as_utc(r.created_at) or _EPOCH, reverse=True)

    start = (page - 1) * page_size
    return ActivityPage(
        items=filtered[start:start + page_size] if page >= 1 else [],
        total_count=len(filtered),
        page=page,
        total_pages=max(1, math.ceil(len(filtered) / page_size)),
        counters=count_activities(filtered),
        kind=activity_type.value if activity_type else ALL_KINDS,
        search=search,
    )


class ActivityAggregator:
    """
    Operator activity view over the event log.

    Example:
        aggregator = ActivityAggregator(ActivityRepository(session_factory))
        result = await aggregator.query(kind="all", search="checkout", page=1)
        result.total_count, result.counters.unique_sessions
    """

    def __init__(
        self,
        repository: ActivityRepository,
        window: Optional[int] = None,
        page_size: Optional[int] = None,
    ):
        settings = get_settings().analytics
        self._repository = repository
        self.window = window or settings.activity_window
        self.page_size = page_size or settings.page_size

    async def query(self, kind: str = ALL_KINDS, search: str = "", page: int = 1) -> ActivityPage:
        records = await self._repository.fetch_recent(kind, limit=self.window)
        result = aggregate_activities(records, kind, search, page, self.page_size)
        logger.debug(
            "Activity view computed",
            kind=result.kind,
            search=search,
            window=len(records),
            total_count=result.total_count,
        )
        return result
