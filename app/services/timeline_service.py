"""
Timeline Service - append-only order audit trail.
"""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.timeline import TimelineEntry

logger = logging.getLogger(__name__)


class TimelineService:
    """Entries share the caller's transaction: they commit or roll back with the transition."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(
        self,
        order_id: int,
        status: str,
        note: Optional[str],
        actor_id: str,
    ) -> TimelineEntry:
        entry = TimelineEntry(
            order_id=order_id,
            status=status,
            note=note,
            created_by=actor_id or "system",
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def list_for_order(self, order_id: int) -> List[TimelineEntry]:
        result = await self.db.execute(
            select(TimelineEntry)
            .where(TimelineEntry.order_id == order_id)
            .order_by(TimelineEntry.created_at, TimelineEntry.id)
        )
        return list(result.scalars().all())
