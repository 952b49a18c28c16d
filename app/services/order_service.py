"""
Order Service - order ledger.

Orders are created here and mutated only through `apply_transition`,
which the reconciliation engine calls with a precomputed transition.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import utcnow
from app.errors import NotFound, StaleTransition, ValidationError
from app.fsm.states import OrderStatus, PaymentMethod, PaymentRecordStatus, PaymentStatus
from app.fsm.transitions import Transition
from app.models.order import Order
from app.services.invoice_service import InvoiceService
from app.services.payment_service import PaymentService
from app.services.timeline_service import TimelineService

logger = logging.getLogger(__name__)


@dataclass
class BuyerContact:
    name: str
    phone: str
    email: Optional[str] = None
    address: Optional[str] = None


@dataclass
class OrderTotals:
    shipping_amount: int = 0
    tax_amount: int = 0
    discount_amount: int = 0


class OrderService:
    """Service for the order ledger. Never commits; the caller owns the transaction."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.payments = PaymentService(db)
        self.timeline = TimelineService(db)
        self.invoices = InvoiceService()

    @staticmethod
    def _validate_items(items: List[Dict[str, Any]]) -> int:
        """Validate line items and return the subtotal in minor units."""
        if not items:
            raise ValidationError("Order must contain at least one item")

        subtotal = 0
        for index, item in enumerate(items):
            name = item.get("name")
            quantity = item.get("quantity")
            unit_price = item.get("unit_price")
            if not name:
                raise ValidationError(f"Item {index} has no name")
            if not isinstance(quantity, int) or quantity <= 0:
                raise ValidationError(f"Item {index} must have a positive quantity")
            if not isinstance(unit_price, int) or unit_price < 0:
                raise ValidationError(f"Item {index} has an invalid price")
            subtotal += quantity * unit_price
        return subtotal

    async def create(
        self,
        seller_id: str,
        items: List[Dict[str, Any]],
        buyer: BuyerContact,
        payment_method: PaymentMethod,
        totals: Optional[OrderTotals] = None,
        currency: Optional[str] = None,
        channel: str = "whatsapp",
        source: str = "ai_chat",
        notes: Optional[str] = None,
        reference: Optional[str] = None,
        actor_id: str = "system",
    ) -> Order:
        """Create an order in pending/unpaid with its first payment attempt."""
        if not seller_id:
            raise ValidationError("seller_id is required")
        if not buyer.name or not buyer.phone:
            raise ValidationError("Customer name and phone are required")
        try:
            method = PaymentMethod(payment_method)
        except ValueError:
            raise ValidationError(f"Unsupported payment method: {payment_method}")

        totals = totals or OrderTotals()
        if min(totals.shipping_amount, totals.tax_amount, totals.discount_amount) < 0:
            raise ValidationError("Amounts cannot be negative")

        subtotal = self._validate_items(items)
        total = subtotal + totals.shipping_amount + totals.tax_amount - totals.discount_amount
        if total <= 0:
            raise ValidationError("Order total must be positive")

        order = Order(
            seller_id=seller_id,
            customer_name=buyer.name,
            customer_phone=buyer.phone,
            customer_email=buyer.email,
            shipping_address=buyer.address,
            items=[dict(item) for item in items],
            subtotal=subtotal,
            shipping_amount=totals.shipping_amount,
            tax_amount=totals.tax_amount,
            discount_amount=totals.discount_amount,
            total_amount=total,
            currency=currency or settings.default_currency,
            channel=channel,
            source=source,
            notes_from_customer=notes,
            reference=reference,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.UNPAID.value,
        )
        self.db.add(order)
        await self.db.flush()

        await self.payments.create_for_order(
            order_id=order.id,
            seller_id=seller_id,
            method=method,
            amount=total,
            currency=order.currency,
        )
        await self.timeline.append(
            order.id,
            OrderStatus.PENDING.value,
            f"Order placed ({method.value})",
            actor_id,
        )
        await self.db.flush()

        logger.info(
            f"Order {order.id} created for seller {seller_id}: {total} {order.currency}",
            extra={"order_id": order.id},
        )
        return order

    async def get(self, order_id: int) -> Order:
        """Fresh read; never served from the session's identity map."""
        order = await self.db.get(Order, order_id, populate_existing=True)
        if not order:
            raise NotFound(f"Order not found: {order_id}")
        return order

    async def get_for_seller(self, order_id: int, seller_id: str) -> Order:
        order = await self.get(order_id)
        if order.seller_id != seller_id:
            raise NotFound(f"Order not found: {order_id}")
        return order

    async def apply_transition(self, transition: Transition) -> Order:
        """
        Apply a transition computed by `decide`.

        The row is re-read and must still be in the state the transition
        was computed from; the UPDATE itself is guarded by the row version.
        """
        order = await self.get(transition.order_id)

        if (
            order.status != transition.expected_status.value
            or order.payment_status != transition.expected_payment_status.value
            or order.version != transition.expected_version
        ):
            raise StaleTransition(
                f"Order {order.id} changed since it was read "
                f"(version {transition.expected_version} -> {order.version})"
            )

        order.status = transition.order_status.value
        order.payment_status = transition.payment_status.value
        if transition.payment_proof_url:
            order.payment_proof_url = transition.payment_proof_url
        if transition.internal_note:
            order.append_internal_note(transition.internal_note)
        if transition.becomes_paid:
            self.invoices.assign(order)
        # Always dirty the row so the version check runs on every transition
        order.updated_at = utcnow()

        if transition.open_attempt is not None:
            payment = await self.payments.create_for_order(
                order_id=order.id,
                seller_id=order.seller_id,
                method=transition.open_attempt,
                amount=order.total_amount,
                currency=order.currency,
            )
            if transition.record_status and transition.record_status != PaymentRecordStatus.PENDING:
                await self.payments.update_status(
                    payment.id,
                    transition.record_status,
                    gateway_payment_id=transition.gateway_payment_id,
                    upi_reference=transition.upi_reference,
                )
        elif transition.payment_id is not None and transition.record_status is not None:
            await self.payments.update_status(
                transition.payment_id,
                transition.record_status,
                gateway_payment_id=transition.gateway_payment_id,
                upi_reference=transition.upi_reference,
                correction=transition.correction,
            )

        await self.timeline.append(
            order.id,
            transition.timeline_status,
            transition.note,
            transition.actor_id,
        )
        await self.db.flush()

        logger.info(
            f"Order {order.id} -> {order.status}/{order.payment_status}",
            extra={"order_id": order.id, "actor_id": transition.actor_id},
        )
        return order
