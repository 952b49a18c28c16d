"""Payment model - one row per payment attempt for an order."""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import String, DateTime, ForeignKey, Index, Integer, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, utcnow
from app.fsm.states import PaymentRecordStatus


class Payment(Base):
    """
    Payment attempt.
    gateway_order_id is unique so inbound webhooks resolve to exactly one row.
    A SUCCESS row is never rewritten except by a logged correction.
    """

    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    order_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("orders.id"),
        nullable=False,
        index=True,
    )

    # Denormalised owner, used to resolve the seller's webhook secret
    seller_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # COD / UPI_MANUAL / GATEWAY
    method: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[str] = mapped_column(
        String(30),
        default=PaymentRecordStatus.PENDING.value,
        nullable=False,
    )

    # Gateway linkage (externally assigned)
    gateway_order_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
    )
    gateway_payment_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Buyer supplied UTR, unverified
    upi_reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Minor currency units
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="INR", nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        # At most one settled attempt per order
        Index(
            "uq_payments_one_success_per_order",
            "order_id",
            unique=True,
            postgresql_where=text("status = 'SUCCESS'"),
            sqlite_where=text("status = 'SUCCESS'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Payment {self.id} {self.method} {self.status}>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "order_id": self.order_id,
            "method": self.method,
            "status": self.status,
            "gateway_order_id": self.gateway_order_id,
            "gateway_payment_id": self.gateway_payment_id,
            "upi_reference": self.upi_reference,
            "amount": self.amount,
            "currency": self.currency,
        }
