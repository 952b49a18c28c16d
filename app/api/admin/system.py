"""
Admin System Endpoints.
Maintenance lock and webhook ledger statistics.
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_admin
from app.database import get_db
from app.fsm.commands import Actor
from app.fsm.states import LockMode
from app.services.secret_service import SecretService
from app.services.system_service import SystemService
from app.services.webhook_service import WebhookService

router = APIRouter()
logger = logging.getLogger(__name__)


class LockRequest(BaseModel):
    reason: str
    mode: LockMode = LockMode.FULL


@router.get("/system/status")
async def system_status(
    db: AsyncSession = Depends(get_db),
    _: Actor = Depends(get_admin),
):
    return await SystemService(db).get_status()


@router.post("/system/lock")
async def lock_system(
    request: LockRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_admin),
):
    return await SystemService(db).lock_system(request.reason, actor.actor_id, request.mode)


@router.post("/system/unlock")
async def unlock_system(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_admin),
):
    return await SystemService(db).unlock_system(actor.actor_id)


@router.get("/webhooks/stats")
async def webhook_stats(
    db: AsyncSession = Depends(get_db),
    _: Actor = Depends(get_admin),
):
    return await WebhookService(db).get_stats()


@router.post("/system/rotate-keys")
async def rotate_keys(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_admin),
):
    """
    Re-wrap every seller data key under the first SECRETS_MASTER_KEYS entry.

    Run after prepending a new master key; the old key can be removed once
    this has succeeded.
    """
    count = await SecretService(db).rewrap_data_keys()
    logger.warning(f"Seller data keys rewrapped by {actor.actor_id}")
    return {"status": "success", "rewrapped": count}
