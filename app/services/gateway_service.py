"""
Gateway Service - Razorpay order creation for GATEWAY payment attempts.

Each seller collects through its own Razorpay account, so a client is built
per call from the seller's stored credentials.
"""

import asyncio
import logging
from typing import Any, Dict

import razorpay
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import ConflictError, GatewayUnavailable, ValidationError
from app.fsm.states import OrderStatus, PaymentMethod, PaymentRecordStatus, PaymentStatus
from app.models.order import Order
from app.services.payment_service import PaymentService
from app.services.secret_service import SecretService

logger = logging.getLogger(__name__)


class GatewayService:

    def __init__(self, db: AsyncSession):
        self.db = db
        self.payments = PaymentService(db)
        self.secrets = SecretService(db)

    async def create_gateway_payment(self, order: Order) -> Dict[str, Any]:
        """
        Create a Razorpay order for `order` and link it to a GATEWAY attempt.

        An attempt that already has a live gateway order is returned as is.
        """
        if order.payment_status == PaymentStatus.PAID.value:
            raise ConflictError("Order is already paid")
        if order.status == OrderStatus.CANCELLED.value:
            raise ConflictError("Order is cancelled")

        credentials = await self.secrets.get_gateway_credentials(order.seller_id)
        if not credentials:
            raise ValidationError("Gateway credentials are not configured for this seller")
        key_id, key_secret = credentials

        current = await self.payments.current_for_order(order.id)
        reusable = (
            current is not None
            and current.method == PaymentMethod.GATEWAY.value
            and current.status == PaymentRecordStatus.PENDING.value
        )
        if reusable and current.gateway_order_id:
            return self._checkout_payload(current, key_id)

        client = razorpay.Client(auth=(key_id, key_secret))
        try:
            gateway_order = await asyncio.to_thread(
                client.order.create,
                {
                    "amount": order.total_amount,
                    "currency": order.currency,
                    "receipt": order.reference or str(order.id),
                    "notes": {
                        "order_id": str(order.id),
                        "seller_id": order.seller_id,
                    },
                },
            )
        except Exception as e:
            logger.error(
                f"Failed to create Razorpay order: {e}",
                extra={"order_id": order.id},
            )
            raise GatewayUnavailable("Payment gateway is unavailable, try again")

        if reusable:
            current.gateway_order_id = gateway_order["id"]
            await self.db.flush()
            payment = current
        else:
            payment = await self.payments.create_for_order(
                order_id=order.id,
                seller_id=order.seller_id,
                method=PaymentMethod.GATEWAY,
                amount=order.total_amount,
                currency=order.currency,
                gateway_order_id=gateway_order["id"],
            )

        logger.info(
            f"Created Razorpay order {gateway_order['id']}",
            extra={"order_id": order.id, "payment_id": str(payment.id)},
        )
        return self._checkout_payload(payment, key_id)

    @staticmethod
    def _checkout_payload(payment, key_id: str) -> Dict[str, Any]:
        return {
            "payment_id": str(payment.id),
            "gateway_order_id": payment.gateway_order_id,
            "amount": payment.amount,
            "currency": payment.currency,
            "key_id": key_id,
        }
