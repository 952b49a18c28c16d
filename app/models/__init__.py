"""Models package for database models."""

from app.models.order import Order
from app.models.payment import Payment
from app.models.timeline import TimelineEntry
from app.models.webhook_event import WebhookEvent
from app.models.seller import SellerPaymentSettings
from app.models.system_settings import SystemSettings

__all__ = [
    "Order",
    "Payment",
    "TimelineEntry",
    "WebhookEvent",
    "SellerPaymentSettings",
    "SystemSettings",
]
