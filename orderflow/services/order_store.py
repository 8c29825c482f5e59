"""
Order Store

Durable record of production orders: creation with a unique order number,
loading (optionally row-locked), field updates with invariant checks and the
role-dependent visibility rules used by order lists.
"""
import logging
import uuid
from datetime import date, datetime, timezone
from typing import Optional, List, Dict, Any

from sqlalchemy import select, update, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.core.exceptions import (
    OrderValidationError,
    OrderNotFoundError,
    ForbiddenTransitionError,
    InvalidTransitionError,
)
from orderflow.core.permissions import Actor
from orderflow.models.order import ProductionOrder, OrderStatus, OrderNumberSequence
from orderflow.models.location_approval import LocationApproval
from orderflow.models.order_history import OrderHistoryEntry
from orderflow.models.notification import NotificationRecord
from orderflow.services.order_state_machine import can_archive


logger = logging.getLogger(__name__)

ORDER_NUMBER_SEQUENCE_ID = 1

# Attributes callers may set on create/update
ORDER_FIELDS = {
    "customer_name",
    "customer_id",
    "article_number",
    "article_description",
    "article_id",
    "product_group",
    "product_group_secondary",
    "total_quantity",
    "fixed_quantity",
    "unit_price",
    "location_distribution",
    "earliest_delivery",
    "latest_delivery",
    "description",
    "attachment_url",
    "attachment_filename",
}

REQUIRED_FIELDS = ("customer_name", "article_number", "article_description", "total_quantity")

EDITABLE_STATUSES = {
    OrderStatus.DRAFT,
    OrderStatus.SALES_REVIEW,
    OrderStatus.SUPPLY_CHAIN_REVIEW,
}


def normalize_distribution(distribution: Any) -> Dict[str, int]:
    """Validate the shape of a location distribution and return a clean copy."""
    if not isinstance(distribution, dict) or not distribution:
        raise OrderValidationError(
            "Location distribution must map at least one location to a quantity",
            details={"field": "location_distribution"},
        )

    cleaned: Dict[str, int] = {}
    for location, quantity in distribution.items():
        key = str(location).strip() if location is not None else ""
        if not key:
            raise OrderValidationError(
                "Location distribution contains an empty location",
                details={"field": "location_distribution"},
            )
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise OrderValidationError(
                f"Quantity for location '{key}' must be a whole number",
                details={"field": "location_distribution", "location": key},
            )
        if quantity < 0:
            raise OrderValidationError(
                f"Quantity for location '{key}' cannot be negative",
                details={"field": "location_distribution", "location": key},
            )
        if key in cleaned:
            raise OrderValidationError(
                f"Location '{key}' appears more than once in the distribution",
                details={"field": "location_distribution", "location": key},
            )
        cleaned[key] = quantity
    return cleaned


def validate_order_invariants(
    total_quantity: Any,
    distribution: Dict[str, int],
    earliest_delivery: Optional[date] = None,
    latest_delivery: Optional[date] = None,
) -> None:
    """
    Entity invariants checked on every write:
    - total quantity is a positive whole number
    - at least one location gets a quantity above zero
    - the distribution never exceeds the total quantity
    - earliest delivery <= latest delivery
    """
    if isinstance(total_quantity, bool) or not isinstance(total_quantity, int) or total_quantity <= 0:
        raise OrderValidationError(
            "Total quantity must be a positive whole number",
            details={"field": "total_quantity"},
        )

    distributed = sum(distribution.values())
    if not any(quantity > 0 for quantity in distribution.values()):
        raise OrderValidationError(
            "At least one location needs a quantity above zero",
            details={"field": "location_distribution"},
        )
    if distributed > total_quantity:
        raise OrderValidationError(
            f"Distributed quantity ({distributed}) exceeds total quantity ({total_quantity})",
            details={
                "field": "location_distribution",
                "distributed": distributed,
                "total_quantity": total_quantity,
            },
        )

    if earliest_delivery and latest_delivery and earliest_delivery > latest_delivery:
        raise OrderValidationError(
            "Earliest delivery date must not be after the latest delivery date",
            details={
                "field": "earliest_delivery",
                "earliest_delivery": earliest_delivery.isoformat(),
                "latest_delivery": latest_delivery.isoformat(),
            },
        )


class OrderStore:
    """Persistence operations for ProductionOrder."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, order_id: uuid.UUID, for_update: bool = False) -> ProductionOrder:
        """
        Load an order.

        With `for_update` the row stays locked until the transaction ends,
        which serializes concurrent workflow operations on the same order.
        """
        stmt = select(ProductionOrder).where(ProductionOrder.id == order_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found", order_id=order_id)
        return order

    async def _next_order_number(self) -> int:
        """Allocate the next order number (row-locked counter, never reused)."""
        result = await self.db.execute(
            select(OrderNumberSequence)
            .where(OrderNumberSequence.id == ORDER_NUMBER_SEQUENCE_ID)
            .with_for_update()
        )
        sequence = result.scalar_one_or_none()

        if sequence is None:
            # Counter row missing (fresh database without migrations)
            highest = await self.db.execute(select(func.max(ProductionOrder.order_number)))
            sequence = OrderNumberSequence(
                id=ORDER_NUMBER_SEQUENCE_ID,
                last_number=highest.scalar() or 0,
            )
            self.db.add(sequence)

        sequence.last_number += 1
        await self.db.flush()
        return sequence.last_number

    async def create(self, data: Dict[str, Any], actor: Actor) -> ProductionOrder:
        """
        Create an order in DRAFT for `actor`.

        Raises:
            OrderValidationError: Unknown/missing fields or violated invariants
        """
        unknown = set(data) - ORDER_FIELDS
        if unknown:
            raise OrderValidationError(
                f"Unknown order fields: {', '.join(sorted(unknown))}",
                details={"fields": sorted(unknown)},
            )
        missing = [field for field in REQUIRED_FIELDS if data.get(field) in (None, "")]
        if missing:
            raise OrderValidationError(
                f"Missing required fields: {', '.join(missing)}",
                details={"fields": missing},
            )

        values = dict(data)
        values["location_distribution"] = normalize_distribution(data.get("location_distribution"))
        validate_order_invariants(
            values["total_quantity"],
            values["location_distribution"],
            values.get("earliest_delivery"),
            values.get("latest_delivery"),
        )

        order = ProductionOrder(
            **values,
            order_number=await self._next_order_number(),
            status=OrderStatus.DRAFT.value,
            created_by_id=actor.id,
            created_by_name=actor.name,
        )
        self.db.add(order)
        await self.db.flush()

        logger.info(f"Order {order.order_number} created by {actor.name} ({actor.role})")
        return order

    def check_editable(self, order: ProductionOrder, actor: Actor) -> None:
        """
        Field edits are allowed while the order is still in intake/review:
        DRAFT and SALES_REVIEW by the creator, SUPPLY_CHAIN_REVIEW by supply
        chain. Admin may edit in all three.
        """
        status = order.status_enum
        if status not in EDITABLE_STATUSES:
            raise InvalidTransitionError(
                f"Order in '{status.value}' status cannot be edited",
                details={"current_status": status.value},
            )
        if actor.is_admin:
            return
        if status == OrderStatus.SUPPLY_CHAIN_REVIEW:
            allowed = actor.is_supply_chain
        else:
            allowed = actor.is_creator_of(order)
        if not allowed:
            raise ForbiddenTransitionError(
                f"Role '{actor.role}' may not edit an order in '{status.value}' status",
                details={"role": actor.role, "current_status": status.value},
            )

    async def update(
        self,
        order_id: uuid.UUID,
        changes: Dict[str, Any],
        actor: Actor,
    ) -> ProductionOrder:
        """
        Apply field changes to an order.

        Raises:
            OrderNotFoundError: Unknown order
            InvalidTransitionError: Order no longer editable in its status
            ForbiddenTransitionError: Actor may not edit in this status
            OrderValidationError: Unknown fields or violated invariants
        """
        order = await self.get(order_id, for_update=True)
        self.check_editable(order, actor)

        unknown = set(changes) - ORDER_FIELDS
        if unknown:
            raise OrderValidationError(
                f"Fields cannot be changed: {', '.join(sorted(unknown))}",
                details={"fields": sorted(unknown)},
            )

        merged = {field: getattr(order, field) for field in ORDER_FIELDS}
        merged.update(changes)
        for field in REQUIRED_FIELDS:
            if merged.get(field) in (None, ""):
                raise OrderValidationError(f"Field '{field}' is required", details={"field": field})

        distribution = normalize_distribution(merged["location_distribution"])
        validate_order_invariants(
            merged["total_quantity"],
            distribution,
            merged.get("earliest_delivery"),
            merged.get("latest_delivery"),
        )

        for field, value in changes.items():
            if field == "location_distribution":
                value = distribution
            setattr(order, field, value)
        await self.db.flush()

        logger.info(f"Order {order.order_number} updated by {actor.name}: {', '.join(sorted(changes))}")
        return order

    async def apply_correction(
        self,
        order: ProductionOrder,
        total_quantity: Optional[int] = None,
        distribution: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Replace quantity and/or distribution as part of a planning correction."""
        new_total = order.total_quantity if total_quantity is None else total_quantity
        new_distribution = normalize_distribution(
            order.location_distribution if distribution is None else distribution
        )
        validate_order_invariants(new_total, new_distribution, order.earliest_delivery, order.latest_delivery)
        order.total_quantity = new_total
        order.location_distribution = new_distribution
        await self.db.flush()

    def _visibility_criteria(self, actor: Actor) -> list:
        """
        WHERE criteria for the orders an actor may see.

        - supply chain / admin: all orders
        - sales: every non-draft order plus their own drafts
        - planning_<location>: orders in PLANNING_REVIEW while that
          location's approval is still pending
        - planning (all locations): orders in PLANNING_REVIEW with any
          pending approval
        """
        if actor.is_sales:
            return [
                or_(
                    ProductionOrder.status != OrderStatus.DRAFT.value,
                    ProductionOrder.created_by_id == actor.id,
                )
            ]
        if actor.is_planning:
            pending = select(LocationApproval.id).where(
                LocationApproval.order_id == ProductionOrder.id,
                LocationApproval.required == True,  # noqa: E712
                LocationApproval.approved == False,  # noqa: E712
            )
            if actor.location:
                pending = pending.where(LocationApproval.location == actor.location)
            return [
                ProductionOrder.status == OrderStatus.PLANNING_REVIEW.value,
                pending.exists(),
            ]
        return []

    async def get_visible(self, order_id: uuid.UUID, actor: Actor) -> ProductionOrder:
        """Load an order only if the actor may see it (NotFound otherwise)."""
        result = await self.db.execute(
            select(ProductionOrder).where(
                ProductionOrder.id == order_id,
                *self._visibility_criteria(actor),
            )
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found", order_id=order_id)
        return order

    async def list_visible(
        self,
        actor: Actor,
        status: Optional[OrderStatus] = None,
        include_archived: bool = False,
        skip: int = 0,
        limit: int = 100,
    ) -> List[ProductionOrder]:
        """Orders the actor may see, newest first."""
        stmt = select(ProductionOrder).where(*self._visibility_criteria(actor))

        if not include_archived:
            stmt = stmt.where(ProductionOrder.archived == False)  # noqa: E712
        if status is not None:
            stmt = stmt.where(ProductionOrder.status == OrderStatus(status).value)

        stmt = stmt.order_by(ProductionOrder.order_number.desc()).offset(skip).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def archive(self, order: ProductionOrder, actor: Actor) -> bool:
        """
        Soft-delete a finished order.

        Returns:
            False if the order was already archived
        """
        status = order.status_enum
        if not can_archive(status):
            raise InvalidTransitionError(
                f"Order in '{status.value}' status cannot be archived",
                details={"current_status": status.value},
            )
        if not (actor.is_admin or actor.is_supply_chain or actor.is_creator_of(order)):
            raise ForbiddenTransitionError(
                f"Role '{actor.role}' may not archive this order",
                details={"role": actor.role},
            )
        if order.archived:
            return False

        order.archived = True
        order.archived_at = datetime.now(timezone.utc)
        await self.db.flush()
        logger.info(f"Order {order.order_number} archived by {actor.name}")
        return True

    async def clear_actor_references(self, actor_id: uuid.UUID) -> Dict[str, int]:
        """
        Remove an actor's identity from stored records (account deletion).

        Display names stay, so history and order lists remain readable.
        """
        counts = {}
        statements = {
            "orders": update(ProductionOrder)
            .where(ProductionOrder.created_by_id == actor_id)
            .values(created_by_id=None),
            "history": update(OrderHistoryEntry)
            .where(OrderHistoryEntry.actor_id == actor_id)
            .values(actor_id=None),
            "location_approvals": update(LocationApproval)
            .where(LocationApproval.approved_by_id == actor_id)
            .values(approved_by_id=None),
            "notifications": update(NotificationRecord)
            .where(NotificationRecord.actor_id == actor_id)
            .values(actor_id=None),
        }
        for name, stmt in statements.items():
            result = await self.db.execute(stmt)
            counts[name] = result.rowcount or 0

        logger.info(f"Cleared references to actor {actor_id}: {counts}")
        return counts
