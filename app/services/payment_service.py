"""
Payment Service - payment attempt records and their status rules.
"""

import logging
import uuid
from typing import List, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.errors import ConflictError, NotFound, TerminalStateConflict
from app.fsm.states import PaymentMethod, PaymentRecordStatus
from app.models.payment import Payment

logger = logging.getLogger(__name__)


class PaymentService:
    """Service for payment attempts. Never commits; the caller owns the transaction."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_for_order(
        self,
        order_id: int,
        seller_id: str,
        method: PaymentMethod,
        amount: int,
        currency: Optional[str] = None,
        gateway_order_id: Optional[str] = None,
    ) -> Payment:
        """Open a new PENDING attempt."""
        payment = Payment(
            order_id=order_id,
            seller_id=seller_id,
            method=PaymentMethod(method).value,
            status=PaymentRecordStatus.PENDING.value,
            amount=amount,
            currency=currency or settings.default_currency,
            gateway_order_id=gateway_order_id,
        )
        self.db.add(payment)
        await self.db.flush()

        logger.info(
            f"Opened {payment.method} payment attempt for order {order_id}",
            extra={"order_id": order_id, "payment_id": str(payment.id)},
        )
        return payment

    async def get(self, payment_id: Union[str, uuid.UUID]) -> Payment:
        if isinstance(payment_id, str):
            try:
                payment_id = uuid.UUID(payment_id)
            except ValueError:
                raise NotFound(f"Payment not found: {payment_id}")
        payment = await self.db.get(Payment, payment_id, populate_existing=True)
        if not payment:
            raise NotFound(f"Payment not found: {payment_id}")
        return payment

    async def get_by_gateway_order_id(self, gateway_order_id: str) -> Optional[Payment]:
        result = await self.db.execute(
            select(Payment)
            .where(Payment.gateway_order_id == gateway_order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_by_gateway_order_id(self, gateway_order_id: str) -> Payment:
        payment = await self.get_by_gateway_order_id(gateway_order_id)
        if not payment:
            raise NotFound(f"No payment for gateway order {gateway_order_id}")
        return payment

    async def find_by_order_id(self, order_id: int) -> List[Payment]:
        """All attempts for an order, oldest first."""
        result = await self.db.execute(
            select(Payment)
            .where(Payment.order_id == order_id)
            .order_by(Payment.created_at)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def current_for_order(self, order_id: int) -> Optional[Payment]:
        """The newest attempt, which manual actions operate on."""
        payments = await self.find_by_order_id(order_id)
        return payments[-1] if payments else None

    async def has_other_success(self, order_id: int, exclude_id: Optional[uuid.UUID]) -> bool:
        """True if an attempt other than `exclude_id` already settled the order."""
        query = select(Payment.id).where(
            Payment.order_id == order_id,
            Payment.status == PaymentRecordStatus.SUCCESS.value,
        )
        if exclude_id is not None:
            query = query.where(Payment.id != exclude_id)
        result = await self.db.execute(query.limit(1))
        return result.scalar_one_or_none() is not None

    async def update_status(
        self,
        payment_id: Union[str, uuid.UUID],
        new_status: PaymentRecordStatus,
        gateway_payment_id: Optional[str] = None,
        upi_reference: Optional[str] = None,
        correction: bool = False,
    ) -> Payment:
        """
        Move an attempt to `new_status`.

        - same status: no-op, so retried deliveries are harmless
        - terminal to another terminal: TerminalStateConflict unless `correction`
        - terminal back to non-terminal: never allowed
        """
        new_status = PaymentRecordStatus(new_status)
        payment = await self.get(payment_id)
        current = PaymentRecordStatus(payment.status)

        if current == new_status:
            return payment

        if current.is_terminal:
            if not new_status.is_terminal:
                raise ConflictError(
                    f"Payment {payment.id} is {current.value} and cannot return to {new_status.value}"
                )
            if not correction:
                raise TerminalStateConflict(
                    f"Payment {payment.id} is already {current.value}, refusing {new_status.value}"
                )
            logger.warning(
                f"Correcting payment {payment.id}: {current.value} -> {new_status.value}",
                extra={"order_id": payment.order_id, "payment_id": str(payment.id)},
            )

        payment.status = new_status.value
        if gateway_payment_id:
            payment.gateway_payment_id = gateway_payment_id
        if upi_reference:
            payment.upi_reference = upi_reference

        await self.db.flush()
        return payment
