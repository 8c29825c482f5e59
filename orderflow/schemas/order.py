"""Pydantic schemas for production orders and the approval workflow."""
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List, Dict
from uuid import UUID

from pydantic import Field, computed_field, model_validator

from orderflow.models.order import OrderStatus
from orderflow.schemas.base import BaseResponseSchema, BaseRequestSchema


# ==================== Order Schemas ====================

class OrderCreate(BaseRequestSchema):
    """Schema for registering an order."""
    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_id: Optional[UUID] = None
    article_number: str = Field(..., min_length=1, max_length=100)
    article_description: str = Field(..., min_length=1, max_length=500)
    article_id: Optional[UUID] = None
    product_group: Optional[str] = Field(None, max_length=100)
    product_group_secondary: Optional[str] = Field(None, max_length=100)
    total_quantity: int = Field(..., gt=0)
    fixed_quantity: Optional[bool] = None
    unit_price: Optional[Decimal] = Field(None, ge=0)
    location_distribution: Dict[str, int] = Field(
        ...,
        description="Quantity per location code, e.g. {\"North\": 60, \"South\": 40}"
    )
    earliest_delivery: Optional[date] = None
    latest_delivery: Optional[date] = None
    description: Optional[str] = None
    attachment_url: Optional[str] = Field(None, max_length=1000)
    attachment_filename: Optional[str] = Field(None, max_length=255)

    @model_validator(mode="after")
    def check_delivery_window(self):
        if self.earliest_delivery and self.latest_delivery and self.earliest_delivery > self.latest_delivery:
            raise ValueError("earliest_delivery must not be after latest_delivery")
        return self


class OrderUpdate(BaseRequestSchema):
    """Schema for editing an order. All fields optional."""
    customer_name: Optional[str] = Field(None, min_length=1, max_length=200)
    customer_id: Optional[UUID] = None
    article_number: Optional[str] = Field(None, min_length=1, max_length=100)
    article_description: Optional[str] = Field(None, min_length=1, max_length=500)
    article_id: Optional[UUID] = None
    product_group: Optional[str] = Field(None, max_length=100)
    product_group_secondary: Optional[str] = Field(None, max_length=100)
    total_quantity: Optional[int] = Field(None, gt=0)
    fixed_quantity: Optional[bool] = None
    unit_price: Optional[Decimal] = Field(None, ge=0)
    location_distribution: Optional[Dict[str, int]] = None
    earliest_delivery: Optional[date] = None
    latest_delivery: Optional[date] = None
    description: Optional[str] = None
    attachment_url: Optional[str] = Field(None, max_length=1000)
    attachment_filename: Optional[str] = Field(None, max_length=255)


class OrderResponse(BaseResponseSchema):
    """Response schema for an order."""
    id: UUID
    order_number: int
    customer_name: str
    customer_id: Optional[UUID] = None
    article_number: str
    article_description: str
    article_id: Optional[UUID] = None
    product_group: Optional[str] = None
    product_group_secondary: Optional[str] = None
    total_quantity: int
    fixed_quantity: Optional[bool] = None
    unit_price: Optional[Decimal] = None
    location_distribution: Dict[str, int]
    earliest_delivery: Optional[date] = None
    latest_delivery: Optional[date] = None
    description: Optional[str] = None
    attachment_url: Optional[str] = None
    attachment_filename: Optional[str] = None
    status: OrderStatus
    rejection_reason: Optional[str] = None
    created_by_id: Optional[UUID] = None
    created_by_name: str
    archived: bool
    archived_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def status_label(self) -> str:
        return self.status.label


class OrderListResponse(BaseResponseSchema):
    items: List[OrderResponse]
    total: int
    skip: int
    limit: int


# ==================== Workflow Schemas ====================

class TransitionRequest(BaseRequestSchema):
    """Move an order to another status."""
    status: OrderStatus
    reason: Optional[str] = Field(None, max_length=2000, description="Required for rejections and corrections")


class PlanningCorrectionRequest(BaseRequestSchema):
    """Send an order back to supply chain, optionally with new quantities."""
    reason: Optional[str] = Field(None, max_length=2000)
    total_quantity: Optional[int] = Field(None, gt=0)
    location_distribution: Optional[Dict[str, int]] = None


class LocationApprovalResponse(BaseResponseSchema):
    id: UUID
    order_id: UUID
    location: str
    required: bool
    approved: bool
    approved_by_id: Optional[UUID] = None
    approved_by_name: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_at: datetime


class HistoryEntryResponse(BaseResponseSchema):
    id: UUID
    order_id: UUID
    actor_id: Optional[UUID] = None
    actor_name: str
    actor_role: Optional[str] = None
    action: str
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    reason: Optional[str] = None
    old_data: Optional[dict] = None
    new_data: Optional[dict] = None
    created_at: datetime


# ==================== Admin / Jobs ====================

class AnonymizeResponse(BaseResponseSchema):
    actor_id: UUID
    cleared: Dict[str, int]


class AutoCompletionResponse(BaseResponseSchema):
    completed: int
    run_at: datetime


class JobInfo(BaseResponseSchema):
    id: str
    name: str
    next_run_time: Optional[str] = None
    trigger: str


class JobStatusResponse(BaseResponseSchema):
    status: str
    jobs: List[JobInfo] = []
