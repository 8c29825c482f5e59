"""
Production Order Model.

One manufacturing order registered by sales and moved through the review
stages:

- DRAFT: being captured by the creator
- SALES_REVIEW: commercial review
- SUPPLY_CHAIN_REVIEW: supply chain review
- PLANNING_REVIEW: per-location planning review (see LocationApproval)
- APPROVED / REJECTED / COMPLETED
"""
import uuid
from datetime import datetime, date, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, Boolean, DateTime, Integer, Text, Numeric, Date
from sqlalchemy import Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orderflow.database import Base
from orderflow.db_types import JSONType, UUIDType

if TYPE_CHECKING:
    from orderflow.models.location_approval import LocationApproval
    from orderflow.models.order_history import OrderHistoryEntry


class OrderStatus(str, Enum):
    """Workflow stage of a production order."""
    DRAFT = "DRAFT"
    SALES_REVIEW = "SALES_REVIEW"
    SUPPLY_CHAIN_REVIEW = "SUPPLY_CHAIN_REVIEW"
    PLANNING_REVIEW = "PLANNING_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"

    @property
    def code(self) -> int:
        return STATUS_CODES[self]

    @property
    def label(self) -> str:
        return STATUS_LABELS[self]


# Stage ordering as used by reports and the legacy integer column
STATUS_CODES = {
    OrderStatus.DRAFT: 1,
    OrderStatus.SALES_REVIEW: 2,
    OrderStatus.SUPPLY_CHAIN_REVIEW: 3,
    OrderStatus.PLANNING_REVIEW: 4,
    OrderStatus.APPROVED: 5,
    OrderStatus.REJECTED: 6,
    OrderStatus.COMPLETED: 7,
}

STATUS_LABELS = {
    OrderStatus.DRAFT: "Draft",
    OrderStatus.SALES_REVIEW: "Sales review",
    OrderStatus.SUPPLY_CHAIN_REVIEW: "Supply chain review",
    OrderStatus.PLANNING_REVIEW: "Planning review",
    OrderStatus.APPROVED: "Approved",
    OrderStatus.REJECTED: "Rejected",
    OrderStatus.COMPLETED: "Completed",
}


class ProductionOrder(Base):
    """
    Manufacturing production order.

    `location_distribution` maps a location code (or site name) to the
    quantity requested at that location.
    """
    __tablename__ = "production_orders"
    __table_args__ = (
        Index("ix_production_orders_status_archived", "status", "archived"),
        CheckConstraint("total_quantity > 0", name="ck_production_orders_total_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Human-facing number, allocated from OrderNumberSequence
    order_number: Mapped[int] = mapped_column(
        Integer,
        unique=True,
        nullable=False,
        index=True,
    )

    # Customer / article (master data lives elsewhere, references optional)
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    article_number: Mapped[str] = mapped_column(String(100), nullable=False)
    article_description: Mapped[str] = mapped_column(String(500), nullable=False)
    article_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    product_group: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    product_group_secondary: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Quantities
    total_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    fixed_quantity: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    unit_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)
    location_distribution: Mapped[dict] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
        comment="{location: quantity}"
    )

    # Delivery window
    earliest_delivery: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    latest_delivery: Mapped[Optional[date]] = mapped_column(Date, nullable=True, index=True)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    attachment_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    attachment_filename: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Workflow
    status: Mapped[str] = mapped_column(
        String(50),
        default=OrderStatus.DRAFT.value,
        nullable=False,
        index=True,
        comment="DRAFT, SALES_REVIEW, SUPPLY_CHAIN_REVIEW, PLANNING_REVIEW, APPROVED, REJECTED, COMPLETED"
    )
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Creator (id cleared on anonymization, name kept)
    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True, index=True)
    created_by_name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Soft delete
    archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    archived_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    location_approvals: Mapped[List["LocationApproval"]] = relationship(
        "LocationApproval",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    history: Mapped[List["OrderHistoryEntry"]] = relationship(
        "OrderHistoryEntry",
        back_populates="order",
        order_by="OrderHistoryEntry.sequence",
    )

    @property
    def status_enum(self) -> OrderStatus:
        return OrderStatus(self.status)

    @property
    def affected_locations(self) -> List[str]:
        """Distribution keys with a quantity above zero."""
        return [
            location for location, quantity in (self.location_distribution or {}).items()
            if quantity and int(quantity) > 0
        ]

    def snapshot(self) -> dict:
        """Plain dict of the workflow-relevant fields (history/audit)."""
        return {
            "status": self.status,
            "total_quantity": self.total_quantity,
            "location_distribution": dict(self.location_distribution or {}),
            "earliest_delivery": self.earliest_delivery.isoformat() if self.earliest_delivery else None,
            "latest_delivery": self.latest_delivery.isoformat() if self.latest_delivery else None,
            "rejection_reason": self.rejection_reason,
        }

    def __repr__(self) -> str:
        return f"<ProductionOrder(number={self.order_number}, status='{self.status}')>"


class OrderNumberSequence(Base):
    """
    Single-row counter for order numbers.

    Locked with SELECT ... FOR UPDATE while allocating so numbers stay
    unique and increasing; numbers are never handed out twice.
    """
    __tablename__ = "order_number_sequence"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    last_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
