"""
Seller Endpoints.
Payment settings (webhook secret, gateway credentials) for the calling seller.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_seller
from app.database import get_db
from app.fsm.commands import Actor
from app.services.secret_service import SecretService

router = APIRouter()
logger = logging.getLogger(__name__)


class PaymentSettingsRequest(BaseModel):
    """Only the fields sent are updated. Secrets are never echoed back."""
    webhook_secret: Optional[str] = None
    gateway_key_id: Optional[str] = None
    gateway_key_secret: Optional[str] = None
    notification_phone: Optional[str] = None


@router.put("/me/payment-settings")
async def update_payment_settings(
    request: PaymentSettingsRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_seller),
):
    summary = await SecretService(db).update_settings(
        actor.actor_id,
        webhook_secret=request.webhook_secret,
        gateway_key_id=request.gateway_key_id,
        gateway_key_secret=request.gateway_key_secret,
        notification_phone=request.notification_phone,
    )
    return {"status": "success", "settings": summary}
