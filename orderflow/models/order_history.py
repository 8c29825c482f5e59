import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orderflow.database import Base
from orderflow.db_types import JSONType, UUIDType

if TYPE_CHECKING:
    from orderflow.models.order import ProductionOrder


class OrderHistoryEntry(Base):
    """
    Append-only audit trail for production orders.
    Records: creation, edits, status transitions, planning sign-offs,
    corrections, archiving and automatic completion.
    """
    __tablename__ = "order_history"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("production_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    # Position within the order's history, strictly increasing
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Who performed the action (id cleared on anonymization, name kept)
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    actor_name: Mapped[str] = mapped_column(String(200), nullable=False)
    actor_role: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    action: Mapped[str] = mapped_column(String(100), nullable=False)
    previous_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    new_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    old_data: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    new_data: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True
    )

    order: Mapped["ProductionOrder"] = relationship("ProductionOrder", back_populates="history")

    def __repr__(self) -> str:
        return f"<OrderHistoryEntry(action='{self.action}', {self.previous_status} -> {self.new_status})>"
