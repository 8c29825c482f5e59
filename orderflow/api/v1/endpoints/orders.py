"""
Production Order API Endpoints.

Provides:
- Order registration, listing and editing
- Status transitions (submit, forward, reject, correct)
- Per-location planning approvals
- Planning corrections
- Archiving, history and approval ledger
"""
from typing import Optional, List
from uuid import UUID

from fastapi import APIRouter, Query, status

from orderflow.api.deps import CurrentActor, Workflow
from orderflow.models.order import OrderStatus
from orderflow.schemas.order import (
    OrderCreate,
    OrderUpdate,
    OrderResponse,
    OrderListResponse,
    TransitionRequest,
    PlanningCorrectionRequest,
    LocationApprovalResponse,
    HistoryEntryResponse,
)

router = APIRouter(prefix="/orders")


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    order_in: OrderCreate,
    workflow: Workflow,
    actor: CurrentActor,
):
    """Register a new order in DRAFT."""
    order = await workflow.create_order(order_in.model_dump(exclude_unset=True), actor)
    return OrderResponse.model_validate(order)


@router.get("", response_model=OrderListResponse)
async def list_orders(
    workflow: Workflow,
    actor: CurrentActor,
    status: Optional[OrderStatus] = Query(None),
    include_archived: bool = Query(False),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
):
    """
    List the orders visible to the caller.

    Planning roles only see orders still waiting for their location.
    """
    orders = await workflow.list_orders(
        actor,
        status=status,
        include_archived=include_archived,
        skip=skip,
        limit=limit,
    )
    return OrderListResponse(
        items=[OrderResponse.model_validate(order) for order in orders],
        total=len(orders),
        skip=skip,
        limit=limit,
    )


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: UUID,
    workflow: Workflow,
    actor: CurrentActor,
):
    order = await workflow.get_order(order_id, actor)
    return OrderResponse.model_validate(order)


@router.patch("/{order_id}", response_model=OrderResponse)
async def update_order(
    order_id: UUID,
    order_in: OrderUpdate,
    workflow: Workflow,
    actor: CurrentActor,
):
    """Edit an order in DRAFT, SALES_REVIEW or SUPPLY_CHAIN_REVIEW."""
    order = await workflow.update_order(order_id, order_in.model_dump(exclude_unset=True), actor)
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/transitions", response_model=OrderResponse)
async def transition_order(
    order_id: UUID,
    request: TransitionRequest,
    workflow: Workflow,
    actor: CurrentActor,
):
    """
    Move an order to another status.

    Errors:
    - 409 INVALID_TRANSITION: not possible from the current status
    - 403 FORBIDDEN: not allowed for the caller's role
    - 422 REASON_REQUIRED: rejection/correction without a reason
    """
    order = await workflow.transition(order_id, request.status, actor, reason=request.reason)
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/locations/{location}/approve", response_model=OrderResponse)
async def approve_location(
    order_id: UUID,
    location: str,
    workflow: Workflow,
    actor: CurrentActor,
):
    """Planning sign-off for one location. The last sign-off approves the order."""
    order = await workflow.approve_location(order_id, location, actor)
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/planning-correction", response_model=OrderResponse)
async def planning_correction(
    order_id: UUID,
    request: PlanningCorrectionRequest,
    workflow: Workflow,
    actor: CurrentActor,
):
    """Send the order back to supply chain; clears all planning approvals."""
    order = await workflow.planning_correction(
        order_id,
        actor,
        request.reason,
        total_quantity=request.total_quantity,
        distribution=request.location_distribution,
    )
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/archive", response_model=OrderResponse)
async def archive_order(
    order_id: UUID,
    workflow: Workflow,
    actor: CurrentActor,
):
    order = await workflow.archive_order(order_id, actor)
    return OrderResponse.model_validate(order)


@router.get("/{order_id}/history", response_model=List[HistoryEntryResponse])
async def get_order_history(
    order_id: UUID,
    workflow: Workflow,
    actor: CurrentActor,
):
    entries = await workflow.get_history(order_id, actor)
    return [HistoryEntryResponse.model_validate(entry) for entry in entries]


@router.get("/{order_id}/approvals", response_model=List[LocationApprovalResponse])
async def get_location_approvals(
    order_id: UUID,
    workflow: Workflow,
    actor: CurrentActor,
):
    approvals = await workflow.get_location_approvals(order_id, actor)
    return [LocationApprovalResponse.model_validate(approval) for approval in approvals]
