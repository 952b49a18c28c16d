"""Webhook event ledger - at-most-once processing of gateway callbacks."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, String, DateTime, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, utcnow
from app.fsm.states import WebhookOutcome


class WebhookEvent(Base):
    """
    Dedup ledger row.
    event_id is unique; a failed insert on it means the event was already seen.
    No foreign key to orders: correlation happens in the reconciliation engine.
    """

    __tablename__ = "webhook_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    event_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    # Secondary correlation key (gateway payment id)
    message_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    source: Mapped[str] = mapped_column(String(50), nullable=False)
    event_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    processed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    outcome: Mapped[str] = mapped_column(
        String(20),
        default=WebhookOutcome.PENDING.value,
        nullable=False,
    )
    # Rejection / conflict message kept for admin review
    detail: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<WebhookEvent {self.event_id} {self.outcome}>"
