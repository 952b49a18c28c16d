"""
Notification Service - WhatsApp messages to buyers and sellers via Meta Cloud API.

Delivery is best effort: a failed message is logged and never affects the
order state that triggered it.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from app.config import settings
from app.fsm.states import OrderStatus, PaymentMethod, PaymentStatus
from app.models.order import Order

logger = logging.getLogger(__name__)


def _rupees(amount: int, currency: str) -> str:
    return f"{currency} {amount / 100:.2f}"


class NotificationService:
    """Service for sending WhatsApp messages via Meta Cloud API."""

    def __init__(self):
        self.api_key = settings.meta_access_token
        self.phone_number_id = settings.meta_phone_number_id
        self.api_version = "v18.0"
        self.base_url = f"https://graph.facebook.com/{self.api_version}/{self.phone_number_id}/messages"

        self.headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _send_request(self, payload: Dict[str, Any]) -> Optional[str]:
        if not self.api_key or not self.phone_number_id:
            logger.warning("Meta API credentials not configured, message dropped")
            return None

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.base_url,
                    json=payload,
                    headers=self.headers,
                    timeout=10.0,
                )
        except httpx.HTTPError as e:
            logger.error(f"Meta API Exception: {e}")
            return None

        if response.status_code in (200, 201):
            return response.json().get("messages", [{}])[0].get("id")
        logger.error(f"Meta API Error {response.status_code}: {response.text}")
        return None

    async def send_text_message(self, phone: str, message: str) -> Optional[str]:
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": phone,
            "type": "text",
            "text": {"preview_url": False, "body": message},
        }
        return await self._send_request(payload)

    @staticmethod
    def buyer_message(order: Order) -> Optional[str]:
        """Text for the buyer after a state change, or None if nothing is worth sending."""
        ref = order.reference or f"#{order.id}"
        amount = _rupees(order.total_amount, order.currency)

        if order.payment_status == PaymentStatus.REFUNDED.value:
            return f"A refund of {amount} for order {ref} has been recorded."
        if order.status == OrderStatus.CANCELLED.value:
            return f"Your order {ref} has been cancelled."
        if order.status == OrderStatus.DELIVERED.value:
            return f"Your order {ref} has been delivered. Thank you for shopping with us!"
        if order.status == OrderStatus.SHIPPED.value:
            return f"Good news! Your order {ref} is on its way."
        if order.payment_status == PaymentStatus.PAID.value:
            message = f"Payment of {amount} received for order {ref}. Your order is confirmed."
            if order.invoice_url:
                message += f"\nInvoice: {order.invoice_url}"
            return message
        if order.payment_status == PaymentStatus.PENDING_VERIFICATION.value:
            return f"We received your payment details for order {ref}. The seller will verify them shortly."
        if order.status == OrderStatus.ON_HOLD.value:
            return f"Your order {ref} is on hold. The seller will contact you for more details."
        if order.payment_status == PaymentStatus.UNPAID.value:
            return f"We could not verify your payment for order {ref}. Please check the details and try again."
        return None

    async def notify_buyer(self, order: Order) -> Optional[str]:
        message = self.buyer_message(order)
        if not message or not order.customer_phone:
            return None
        try:
            return await self.send_text_message(order.customer_phone, message)
        except Exception as e:
            logger.error(f"Buyer notification failed: {e}", extra={"order_id": order.id})
            return None

    async def notify_seller(self, phone: Optional[str], message: str) -> Optional[str]:
        if not phone:
            return None
        try:
            return await self.send_text_message(phone, message)
        except Exception as e:
            logger.error(f"Seller notification failed: {e}")
            return None

    @staticmethod
    def payment_reminder(order: Order, method: Optional[str] = None) -> str:
        ref = order.reference or f"#{order.id}"
        message = (
            f"Payment reminder: please complete the payment of "
            f"{_rupees(order.total_amount, order.currency)} for order {ref}."
        )
        if method == PaymentMethod.UPI_MANUAL.value:
            message += " Once paid, reply with your UPI transaction ID."
        return message

    async def remind_buyer(self, order: Order, method: Optional[str] = None) -> Optional[str]:
        if not order.customer_phone:
            return None
        return await self.send_text_message(order.customer_phone, self.payment_reminder(order, method))
