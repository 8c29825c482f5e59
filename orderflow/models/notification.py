import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from orderflow.database import Base
from orderflow.db_types import UUIDType


class NotificationRecord(Base):
    """
    Log of notifications handed to the notifier.

    Written right before dispatch and never updated; used to suppress the
    same event being sent twice within the dedup window.
    """
    __tablename__ = "notification_log"
    __table_args__ = (
        Index("ix_notification_log_dedup", "dedup_key", "created_at"),
    )

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

    event_kind: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    order_status: Mapped[str] = mapped_column(String(50), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    dedup_key: Mapped[str] = mapped_column(String(64), nullable=False)

    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    actor_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<NotificationRecord(event='{self.event_kind}', order='{self.order_id}')>"
