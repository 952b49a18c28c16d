"""Order model - the authoritative record of a commercial transaction."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import String, DateTime, Integer, JSON, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, utcnow
from app.fsm.states import OrderStatus, PaymentStatus


class Order(Base):
    """
    Order ledger row.
    status/payment_status are only ever written through the reconciliation
    engine; `version` makes every write a compare-and-swap.
    """

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Human readable reference shown to buyers (e.g. "WG-1042")
    reference: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)

    # Seller owning the order
    seller_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # Buyer contact
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(20), nullable=False)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    shipping_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Line items, immutable once created
    items: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)

    # Totals in minor currency units
    subtotal: Mapped[int] = mapped_column(Integer, nullable=False)
    shipping_amount: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    tax_amount: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    discount_amount: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="INR", nullable=False)

    channel: Mapped[str] = mapped_column(String(30), default="whatsapp", nullable=False)
    source: Mapped[str] = mapped_column(String(30), default="ai_chat", nullable=False)
    notes_from_customer: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Reconciliation surface
    status: Mapped[str] = mapped_column(
        String(30),
        default=OrderStatus.PENDING.value,
        nullable=False,
        index=True,
    )
    payment_status: Mapped[str] = mapped_column(
        String(30),
        default=PaymentStatus.UNPAID.value,
        nullable=False,
        index=True,
    )

    # Last screenshot URL supplied with a UPI proof
    payment_proof_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Append-only seller/admin scratchpad
    notes_internal: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Assigned once on the first paid transition
    invoice_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, unique=True)
    invoice_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

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

    def __repr__(self) -> str:
        return f"<Order {self.id} {self.status}/{self.payment_status}>"

    def append_internal_note(self, note: str) -> None:
        """Append a segment to notes_internal; earlier segments are never rewritten."""
        if not note:
            return
        self.notes_internal = f"{self.notes_internal} | {note}" if self.notes_internal else note

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "reference": self.reference,
            "seller_id": self.seller_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_email": self.customer_email,
            "items": self.items,
            "subtotal": self.subtotal,
            "shipping_amount": self.shipping_amount,
            "tax_amount": self.tax_amount,
            "discount_amount": self.discount_amount,
            "total_amount": self.total_amount,
            "currency": self.currency,
            "status": self.status,
            "payment_status": self.payment_status,
            "notes_internal": self.notes_internal,
            "invoice_number": self.invoice_number,
            "invoice_url": self.invoice_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
