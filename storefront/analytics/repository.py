"""
Activity Repository

Append-only access to the user_activity table.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.database.connection import session_scope
from storefront.database.models import ActivityType, UserActivity, utcnow
from storefront.errors import ValidationFailedError

logger = structlog.get_logger(__name__)

ALL_KINDS = "all"


def parse_kind(kind: Union[str, ActivityType]) -> ActivityType:
    try:
        return ActivityType(kind)
    except ValueError:
        raise ValidationFailedError(
            f"Unknown activity type: {kind}",
            detail={"allowed": [k.value for k in ActivityType]},
        ) from None


def parse_kind_filter(kind: Optional[Union[str, ActivityType]]) -> Optional[ActivityType]:
    """None or "all" means no kind filter"""
    if kind is None or kind == ALL_KINDS:
        return None
    return parse_kind(kind)


@dataclass
class ActivityRecord:
    """One visitor event as read back from the log"""
    id: uuid.UUID
    session_id: str
    activity_type: ActivityType
    created_at: datetime
    product_id: Optional[uuid.UUID] = None
    product_name: Optional[str] = None
    page_path: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None

    @classmethod
    def from_model(cls, row: UserActivity) -> "ActivityRecord":
        return cls(
            id=row.id,
            session_id=row.session_id,
            activity_type=row.activity_type,
            created_at=row.created_at,
            product_id=row.product_id,
            product_name=row.product_name,
            page_path=row.page_path,
            metadata=row.event_metadata if isinstance(row.event_metadata, dict) else {},
            user_agent=row.user_agent,
            ip_address=row.ip_address,
        )

    def to_record(self) -> Dict[str, Any]:
        """Row payload published on the user_activity channel"""
        return {
            "id": str(self.id),
            "session_id": self.session_id,
            "activity_type": self.activity_type.value,
            "product_id": str(self.product_id) if self.product_id else None,
            "product_name": self.product_name,
            "page_path": self.page_path,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
        }


class ActivityRepository:

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def append(
        self,
        session_id: str,
        activity_type: ActivityType,
        page_path: Optional[str] = None,
        product_id: Optional[uuid.UUID] = None,
        product_name: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> ActivityRecord:
        row = UserActivity(
            id=uuid.uuid4(),
            session_id=session_id,
            activity_type=activity_type,
            product_id=product_id,
            product_name=product_name,
            page_path=page_path,
            event_metadata=metadata or {},
            user_agent=user_agent,
            ip_address=ip_address,
            created_at=created_at or utcnow(),
        )
        async with session_scope(self._session_factory) as db:
            db.add(row)
        return ActivityRecord.from_model(row)

    async def fetch_recent(
        self,
        kind: Optional[Union[str, ActivityType]] = None,
        limit: int = 1000,
    ) -> List[ActivityRecord]:
        """
        Newest-first window of the log, optionally restricted to one kind.

        Only the kind filter runs in the store; text search happens on the
        returned window.
        """
        activity_type = parse_kind_filter(kind)
        query = select(UserActivity).order_by(UserActivity.created_at.desc()).limit(limit)
        if activity_type is not None:
            query = query.where(UserActivity.activity_type == activity_type)

        async with session_scope(self._session_factory) as db:
            result = await db.execute(query)
            return [ActivityRecord.from_model(row) for row in result.scalars()]
