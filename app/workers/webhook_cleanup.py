"""
Webhook Ledger Cleanup Worker.

Runs daily to purge dedup ledger rows past the retention window.
"""

import asyncio
import logging

from app.config import settings
from app.database import get_db_context
from app.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


async def _cleanup(retention_days: int) -> int:
    async with get_db_context() as db:
        from app.services.webhook_service import WebhookService

        service = WebhookService(db)
        return await service.cleanup_old_events(retention_days)


@celery_app.task
def cleanup_webhook_events():
    """
    Delete webhook events older than WEBHOOK_RETENTION_DAYS.

    A failed run is logged and left for the next day's run.
    """
    try:
        deleted = asyncio.run(_cleanup(settings.webhook_retention_days))
        logger.info(f"Webhook cleanup removed {deleted} events")
        return {"success": True, "deleted": deleted}
    except Exception as e:
        logger.error(f"Webhook cleanup failed: {e}")
        return {"success": False, "error": str(e)}
