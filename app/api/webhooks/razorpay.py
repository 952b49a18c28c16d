"""
Razorpay Webhook Handler.
Verifies per-seller signatures, deduplicates, and hands payment events to
the reconciliation engine.
"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request, Response
from redis.asyncio.client import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.errors import ReconciliationError
from app.fsm.machine import ReconciliationEngine
from app.redis import get_redis
from app.services.notification_service import NotificationService
from app.services.system_service import SystemService
from app.services.webhook_service import WebhookService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/razorpay/sellers")
async def razorpay_seller_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_razorpay_signature: Optional[str] = Header(None, alias="X-Razorpay-Signature"),
    x_razorpay_event_id: Optional[str] = Header(None, alias="X-Razorpay-Event-Id"),
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
):
    """
    Handle Razorpay events for seller accounts.

    Answers with a bare status code: 200 processed, duplicate or ignored;
    400 bad signature or body; 404 unknown gateway order; 409 recorded for
    review; 503 maintenance; 500 store failure (Razorpay will redeliver).
    """
    # Signature is over the exact bytes, so read the body before anything parses it
    body = await request.body()

    service = WebhookService(db, redis_client=redis)
    guard = SystemService(db)
    try:
        outcome = await service.ingest(
            body,
            x_razorpay_signature,
            engine=ReconciliationEngine(db, guard=guard),
            guard=guard,
            header_event_id=x_razorpay_event_id,
        )
    except ReconciliationError as e:
        logger.warning(f"Razorpay webhook answered {e.status_code}: {e.message}")
        return Response(status_code=e.status_code)
    except Exception as e:
        logger.error(f"Error processing Razorpay webhook: {e}", exc_info=True)
        return Response(status_code=500)

    if outcome.changed:
        background_tasks.add_task(NotificationService().notify_buyer, outcome.order)

    logger.info(f"Razorpay webhook {outcome.result.value}")
    return Response(status_code=200)
