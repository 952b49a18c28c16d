"""Services package."""

from app.services.order_service import OrderService
from app.services.payment_service import PaymentService
from app.services.timeline_service import TimelineService
from app.services.invoice_service import InvoiceService
from app.services.webhook_service import WebhookService
from app.services.system_service import SystemService
from app.services.secret_service import SecretService
from app.services.gateway_service import GatewayService
from app.services.notification_service import NotificationService

__all__ = [
    "OrderService",
    "PaymentService",
    "TimelineService",
    "InvoiceService",
    "WebhookService",
    "SystemService",
    "SecretService",
    "GatewayService",
    "NotificationService",
]
