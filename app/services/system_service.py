"""
System Service - platform maintenance lock.

The flag lives in the database and is read on every call, so a lock taken
by one worker applies to all of them immediately.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import utcnow
from app.errors import MaintenanceMode, ValidationError
from app.fsm.states import LockMode, Operation
from app.models.system_settings import SystemSettings

logger = logging.getLogger(__name__)

SETTINGS_ROW_ID = 1

# Operation classes each lock mode blocks. Admin is never blocked.
BLOCKED_OPERATIONS = {
    LockMode.FULL: {Operation.ORDERS, Operation.WEBHOOKS},
    LockMode.ORDERS: {Operation.ORDERS},
    LockMode.WEBHOOKS: {Operation.WEBHOOKS},
    LockMode.NONE: set(),
}


class SystemService:
    """Operation guard backed by the `system_settings` row."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _load(self) -> Optional[SystemSettings]:
        return await self.db.get(SystemSettings, SETTINGS_ROW_ID, populate_existing=True)

    async def _load_or_create(self) -> SystemSettings:
        row = await self._load()
        if row is None:
            row = SystemSettings(id=SETTINGS_ROW_ID)
            self.db.add(row)
        return row

    async def get_status(self) -> Dict[str, Any]:
        row = await self._load()
        if row is None:
            return {
                "maintenance_mode": False,
                "lock_mode": LockMode.NONE.value,
                "lock_reason": None,
                "locked_by": None,
                "locked_at": None,
            }
        return {
            "maintenance_mode": row.maintenance_mode,
            "lock_mode": row.lock_mode,
            "lock_reason": row.lock_reason,
            "locked_by": row.locked_by,
            "locked_at": row.locked_at.isoformat() if row.locked_at else None,
        }

    async def is_operation_allowed(self, operation: Operation) -> bool:
        operation = Operation(operation)
        if operation == Operation.ADMIN:
            return True

        try:
            row = await self._load()
        except SQLAlchemyError as e:
            # Fail open: an unreadable flag must not take the platform down
            logger.error(f"Could not read maintenance flag: {e}")
            await self.db.rollback()
            return True

        if row is None or not row.maintenance_mode:
            return True
        return operation not in BLOCKED_OPERATIONS[LockMode(row.lock_mode)]

    async def ensure_allowed(self, operation: Operation) -> None:
        if not await self.is_operation_allowed(operation):
            row = await self._load()
            reason = row.lock_reason if row and row.lock_reason else "System is under maintenance"
            raise MaintenanceMode(reason)

    async def lock_system(
        self,
        reason: str,
        actor_id: str,
        mode: LockMode = LockMode.FULL,
    ) -> Dict[str, Any]:
        mode = LockMode(mode)
        if mode == LockMode.NONE:
            raise ValidationError("Use unlock to clear the maintenance lock")

        row = await self._load_or_create()
        row.maintenance_mode = True
        row.lock_mode = mode.value
        row.lock_reason = reason
        row.locked_by = actor_id
        row.locked_at = utcnow()
        await self.db.flush()

        logger.warning(f"System locked ({mode.value}) by {actor_id}: {reason}")
        return await self.get_status()

    async def unlock_system(self, actor_id: str) -> Dict[str, Any]:
        row = await self._load_or_create()
        row.maintenance_mode = False
        row.lock_mode = LockMode.NONE.value
        row.lock_reason = None
        row.locked_by = None
        row.locked_at = None
        await self.db.flush()

        logger.warning(f"System unlocked by {actor_id}")
        return await self.get_status()
