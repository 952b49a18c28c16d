"""
Admin Order Endpoints.
Manual resolution of orders flagged for review.
"""

import logging
from typing import Literal

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_admin
from app.api.orders import apply_command
from app.database import get_db
from app.fsm.commands import Actor, AdminMarkFailed, AdminMarkPaid, AdminRequestInfo

router = APIRouter()
logger = logging.getLogger(__name__)

RESOLVE_COMMANDS = {
    "mark_paid": AdminMarkPaid,
    "mark_failed": AdminMarkFailed,
    "request_info": AdminRequestInfo,
}


class ResolveRequest(BaseModel):
    action: Literal["mark_paid", "mark_failed", "request_info"]
    note: str = ""


@router.post("/orders/{order_id}/resolve")
async def resolve_order(
    order_id: int,
    request: ResolveRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_admin),
):
    """
    Override an order's state. Works during maintenance; every override is
    recorded with an ADMIN OVERRIDE note.
    """
    command = RESOLVE_COMMANDS[request.action](note=request.note)
    logger.warning(f"Admin resolve {request.action} on order {order_id}", extra={"order_id": order_id})
    return await apply_command(db, order_id, command, actor, background_tasks)
