"""
Verification Reminder Worker.

Runs hourly to nudge sellers about UPI payment proofs that have been
waiting for verification too long.
"""

import asyncio
import logging
from collections import defaultdict
from datetime import timedelta
from typing import Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db_context, utcnow
from app.fsm.states import PaymentStatus
from app.models.order import Order
from app.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


async def find_stale_verifications(db: AsyncSession, older_than_hours: int) -> Dict[str, List[Order]]:
    """Orders stuck in pending_verification, grouped by seller."""
    cutoff = utcnow() - timedelta(hours=older_than_hours)
    result = await db.execute(
        select(Order)
        .where(
            Order.payment_status == PaymentStatus.PENDING_VERIFICATION.value,
            Order.updated_at < cutoff,
        )
        .order_by(Order.id)
    )
    grouped: Dict[str, List[Order]] = defaultdict(list)
    for order in result.scalars().all():
        grouped[order.seller_id].append(order)
    return grouped


async def remind_sellers(db: AsyncSession, older_than_hours: int) -> int:
    """Send one reminder per seller. Returns the number of orders covered."""
    from app.services.notification_service import NotificationService
    from app.services.secret_service import SecretService

    stale = await find_stale_verifications(db, older_than_hours)
    notifier = NotificationService()
    secrets = SecretService(db)

    covered = 0
    for seller_id, orders in stale.items():
        refs = ", ".join(o.reference or str(o.id) for o in orders)
        logger.warning(f"Seller {seller_id} has {len(orders)} unverified payment proofs: {refs}")
        phone = await secrets.get_notification_phone(seller_id)
        await notifier.notify_seller(
            phone,
            f"{len(orders)} payment proof(s) are waiting for your verification: {refs}",
        )
        covered += len(orders)
    return covered


async def _run() -> int:
    async with get_db_context() as db:
        return await remind_sellers(db, settings.verification_reminder_hours)


@celery_app.task
def send_verification_reminders():
    """Hourly sweep; failures are logged and picked up by the next run."""
    try:
        count = asyncio.run(_run())
        logger.info(f"Verification reminders covered {count} orders")
        return {"success": True, "count": count}
    except Exception as e:
        logger.error(f"Verification reminder sweep failed: {e}")
        return {"success": False, "error": str(e)}
