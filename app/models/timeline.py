"""Order timeline - append-only audit trail of state changes."""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, utcnow


class TimelineEntry(Base):
    """One entry per state-changing transition. Never updated or deleted."""

    __tablename__ = "order_timeline"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    order_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("orders.id"),
        nullable=False,
        index=True,
    )

    # Fulfillment status or settlement sub-status at the time
    status: Mapped[str] = mapped_column(String(50), nullable=False)

    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Actor id or "system"
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<TimelineEntry {self.order_id} {self.status}>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status,
            "note": self.note,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
