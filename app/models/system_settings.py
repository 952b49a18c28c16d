"""System settings - maintenance lock read from the store on every invocation."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, String, DateTime, Integer
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, utcnow
from app.fsm.states import LockMode


class SystemSettings(Base):
    """Single-row table holding the platform kill switch."""

    __tablename__ = "system_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)

    maintenance_mode: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    lock_mode: Mapped[str] = mapped_column(
        String(20),
        default=LockMode.NONE.value,
        nullable=False,
    )
    lock_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    locked_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    locked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<SystemSettings maintenance={self.maintenance_mode} mode={self.lock_mode}>"
