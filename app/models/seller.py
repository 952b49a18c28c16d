"""Seller payment settings - per-seller gateway credentials, stored encrypted."""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, utcnow


class SellerPaymentSettings(Base):
    """
    Per-seller gateway configuration.

    Secrets are envelope-encrypted: `data_key_encrypted` is the seller's data
    key wrapped by the platform master key; the secret columns are encrypted
    with that data key. Nothing here is ever stored in plaintext.
    """

    __tablename__ = "seller_payment_settings"

    seller_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    data_key_encrypted: Mapped[str] = mapped_column(Text, nullable=False)

    webhook_secret_encrypted: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Razorpay sub-account credentials
    gateway_key_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    gateway_key_secret_encrypted: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # WhatsApp number for seller alerts
    notification_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

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

    def __repr__(self) -> str:
        return f"<SellerPaymentSettings {self.seller_id}>"
