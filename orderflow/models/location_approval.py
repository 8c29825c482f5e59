import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Boolean, DateTime, ForeignKey
from sqlalchemy import UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orderflow.database import Base
from orderflow.db_types import UUIDType

if TYPE_CHECKING:
    from orderflow.models.order import ProductionOrder


class LocationApproval(Base):
    """
    Planning sign-off requirement for one location of an order.

    Rows are created when the order enters planning review (one per location
    with a quantity above zero) and deleted when the order is corrected back.
    """
    __tablename__ = "order_location_approvals"
    __table_args__ = (
        UniqueConstraint("order_id", "location", name="uq_order_location_approval"),
        Index("ix_location_approvals_pending", "location", "required", "approved"),
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
    location: Mapped[str] = mapped_column(String(50), nullable=False)

    required: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    approved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    approved_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    approved_by_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    order: Mapped["ProductionOrder"] = relationship("ProductionOrder", back_populates="location_approvals")

    @property
    def is_pending(self) -> bool:
        return self.required and not self.approved

    def __repr__(self) -> str:
        return f"<LocationApproval(order='{self.order_id}', location='{self.location}', approved={self.approved})>"
