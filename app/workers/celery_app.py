"""
Celery application configuration.
"""

from celery import Celery
from celery.schedules import crontab

from app.config import settings

# Create Celery app
celery_app = Celery(
    "ledgerline",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "app.workers.webhook_cleanup",
        "app.workers.verification_reminders",
    ],
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="Asia/Kolkata",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,  # 5 minutes
    worker_prefetch_multiplier=1,
    task_acks_late=True,
)

# Beat schedule for periodic tasks
celery_app.conf.beat_schedule = {
    # Purge the webhook dedup ledger daily at 3:15 AM IST
    "daily-webhook-cleanup": {
        "task": "app.workers.webhook_cleanup.cleanup_webhook_events",
        "schedule": crontab(hour=3, minute=15),
    },
    # Remind sellers about unverified UPI proofs every hour
    "hourly-verification-reminders": {
        "task": "app.workers.verification_reminders.send_verification_reminders",
        "schedule": crontab(minute=0, hour="*"),
    },
}
