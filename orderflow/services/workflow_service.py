"""
Order Workflow Service

Entry point for every change to a production order. Each operation runs as
one unit of work:

    load order (row lock) -> authorize -> mutate -> history
    -> ledger seed/reset -> status aggregation -> notification claims
    -> COMMIT -> notifier calls

Authorization and validation errors are raised before anything is written.
Notifier calls happen after the commit; their failures are logged only.
"""
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Optional, List, Dict, Any
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.config import settings
from orderflow.core.exceptions import (
    ForbiddenTransitionError,
    InvalidTransitionError,
    OrderValidationError,
)
from orderflow.core.permissions import Actor, SYSTEM_ACTOR
from orderflow.models.order import ProductionOrder, OrderStatus
from orderflow.models.location_approval import LocationApproval
from orderflow.models.order_history import OrderHistoryEntry
from orderflow.services.history_service import OrderHistoryService
from orderflow.services.location_approval_service import LocationApprovalLedger
from orderflow.services.notification_dedup_service import EventDeduplicator
from orderflow.services.notification_service import (
    NotificationDispatcher,
    NotificationEventKind,
    PendingNotification,
    build_payload,
    events_for_transition,
)
from orderflow.services.order_state_machine import TransitionRule, authorize
from orderflow.services.order_store import OrderStore
from orderflow.services.status_aggregator import StatusAggregator


logger = logging.getLogger(__name__)

CORRECTABLE_STATUSES = {OrderStatus.PLANNING_REVIEW, OrderStatus.APPROVED}


class WorkflowService:
    """
    Orchestrates order store, approval ledger, aggregator, deduplicator
    and dispatcher. The actor is always passed explicitly.
    """

    def __init__(self, db: AsyncSession, notifier=None):
        self.db = db
        self.store = OrderStore(db)
        self.ledger = LocationApprovalLedger(db)
        self.aggregator = StatusAggregator(db)
        self.history = OrderHistoryService(db)
        self.dedup = EventDeduplicator(db)
        self.dispatcher = NotificationDispatcher(notifier)
        self._pending: List[PendingNotification] = []

    # ==================== Unit of work ====================

    @asynccontextmanager
    async def _unit_of_work(self):
        """Commit on success, roll back on error, then deliver notifications."""
        self._pending = []
        try:
            yield
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            self._pending = []
            raise

        pending, self._pending = self._pending, []
        if pending:
            await self.dispatcher.deliver(pending)

    async def _queue_events(
        self,
        order: ProductionOrder,
        events: List[NotificationEventKind],
        actor: Actor,
        reason: Optional[str] = None,
        previous_status: Optional[OrderStatus] = None,
        locations: Optional[List[str]] = None,
    ) -> None:
        if not events:
            return
        if not locations:
            locations = await self.ledger.locations_for_order(order.id) or order.affected_locations
        for event_kind in events:
            claimed = await self.dedup.claim(
                order.id, event_kind.value, order.status, actor, reason
            )
            if not claimed:
                continue
            self._pending.append(PendingNotification(
                event_kind=event_kind,
                order_number=order.order_number,
                payload=build_payload(
                    order,
                    event_kind,
                    actor,
                    reason=reason,
                    previous_status=previous_status.value if previous_status else None,
                    locations=locations,
                ),
            ))

    async def _refresh_status(self, order: ProductionOrder) -> None:
        """Run the aggregator and queue the events of a derived status change."""
        change = await self.aggregator.refresh(order)
        if change is None:
            return
        previous, new = change
        await self._queue_events(
            order,
            events_for_transition(order, previous, new, SYSTEM_ACTOR),
            SYSTEM_ACTOR,
            previous_status=previous,
        )

    async def _authorize(
        self,
        order: ProductionOrder,
        new_status: OrderStatus,
        actor: Actor,
        reason: Optional[str],
    ) -> TransitionRule:
        try:
            new_status = OrderStatus(new_status)
        except ValueError:
            raise OrderValidationError(
                f"Unknown status '{new_status}'",
                details={"field": "status"},
            )
        ledger_locations = await self.ledger.locations_for_order(order.id)
        return authorize(actor, order, new_status, reason, ledger_locations)

    async def _apply(
        self,
        order: ProductionOrder,
        rule: TransitionRule,
        actor: Actor,
        reason: Optional[str],
        old_data: Dict[str, Any],
    ) -> None:
        """Write an authorized transition and everything that follows from it."""
        previous = order.status_enum
        reason = reason.strip() if reason else None

        order.status = rule.target.value
        order.rejection_reason = reason if rule.reason_required else None
        await self.db.flush()

        await self.history.log(
            order_id=order.id,
            actor=actor,
            action=rule.action,
            previous_status=previous.value,
            new_status=rule.target.value,
            reason=reason,
            old_data=old_data,
            new_data=order.snapshot(),
        )

        # Reset drops the ledger rows; keep their codes for the correction event.
        ledger_locations = await self.ledger.locations_for_order(order.id)
        if rule.target == OrderStatus.PLANNING_REVIEW:
            await self.ledger.seed(order.id, order.location_distribution)
            ledger_locations = None
        elif rule.correction and previous in CORRECTABLE_STATUSES:
            await self.ledger.reset(order.id)

        logger.info(
            f"Order {order.order_number}: {previous.value} -> {rule.target.value} "
            f"by {actor.name} ({actor.role})"
        )

        await self._queue_events(
            order,
            events_for_transition(order, previous, rule.target, actor),
            actor,
            reason=reason,
            previous_status=previous,
            locations=ledger_locations,
        )
        await self._refresh_status(order)

    # ==================== Operations ====================

    async def create_order(self, data: Dict[str, Any], actor: Actor) -> ProductionOrder:
        """Register a new order in DRAFT (sales or admin)."""
        if not (actor.is_sales or actor.is_admin):
            raise ForbiddenTransitionError(
                f"Role '{actor.role}' may not create orders",
                details={"role": actor.role},
            )

        async with self._unit_of_work():
            order = await self.store.create(data, actor)
            await self.history.log(
                order_id=order.id,
                actor=actor,
                action="Created",
                new_status=order.status,
                new_data=order.snapshot(),
            )
            await self._queue_events(order, [NotificationEventKind.CREATED], actor)
        return order

    async def update_order(
        self,
        order_id: uuid.UUID,
        changes: Dict[str, Any],
        actor: Actor,
    ) -> ProductionOrder:
        """Edit order fields while the order is still in intake/review."""
        async with self._unit_of_work():
            order = await self.store.get(order_id, for_update=True)
            old_data = order.snapshot()
            order = await self.store.update(order_id, changes, actor)
            await self.history.log(
                order_id=order.id,
                actor=actor,
                action="Updated",
                previous_status=order.status,
                new_status=order.status,
                old_data=old_data,
                new_data=order.snapshot(),
            )
        return order

    async def transition(
        self,
        order_id: uuid.UUID,
        new_status: OrderStatus,
        actor: Actor,
        reason: Optional[str] = None,
    ) -> ProductionOrder:
        """
        Move an order to `new_status`.

        Raises:
            OrderNotFoundError: Unknown order
            InvalidTransitionError: Not possible from the current status
            ForbiddenTransitionError: Not allowed for the actor
            MissingReasonError: Rejection/correction without reason
        """
        async with self._unit_of_work():
            order = await self.store.get(order_id, for_update=True)
            rule = await self._authorize(order, new_status, actor, reason)
            await self._apply(order, rule, actor, reason, order.snapshot())
        return order

    async def approve_location(
        self,
        order_id: uuid.UUID,
        location: str,
        actor: Actor,
    ) -> ProductionOrder:
        """Record one location's planning sign-off; approves the order when none are pending."""
        async with self._unit_of_work():
            order = await self.store.get(order_id, for_update=True)
            changed = await self.ledger.approve(order, location, actor)
            if changed:
                await self.history.log(
                    order_id=order.id,
                    actor=actor,
                    action=f"Planning approval {location}",
                    previous_status=order.status,
                    new_status=order.status,
                )
            await self._refresh_status(order)
        return order

    async def planning_correction(
        self,
        order_id: uuid.UUID,
        actor: Actor,
        reason: Optional[str],
        total_quantity: Optional[int] = None,
        distribution: Optional[Dict[str, int]] = None,
    ) -> ProductionOrder:
        """
        Send an order in planning review (or approved) back to supply chain.

        Optionally replaces total quantity and distribution. All planning
        approvals are discarded; they are seeded again when the order
        re-enters planning review.
        """
        async with self._unit_of_work():
            order = await self.store.get(order_id, for_update=True)
            if order.status_enum not in CORRECTABLE_STATUSES:
                raise InvalidTransitionError(
                    f"Order in '{order.status}' status cannot be corrected by planning",
                    details={"current_status": order.status},
                )
            rule = await self._authorize(order, OrderStatus.SUPPLY_CHAIN_REVIEW, actor, reason)

            old_data = order.snapshot()
            if total_quantity is not None or distribution is not None:
                await self.store.apply_correction(order, total_quantity, distribution)

            await self._apply(order, rule, actor, reason, old_data)
        return order

    async def archive_order(self, order_id: uuid.UUID, actor: Actor) -> ProductionOrder:
        async with self._unit_of_work():
            order = await self.store.get(order_id, for_update=True)
            if await self.store.archive(order, actor):
                await self.history.log(
                    order_id=order.id,
                    actor=actor,
                    action="Archived",
                    previous_status=order.status,
                    new_status=order.status,
                )
        return order

    async def anonymize_actor(self, actor_id: uuid.UUID, actor: Actor) -> Dict[str, int]:
        """Clear a deleted account's identity from all workflow records (admin)."""
        if not actor.is_admin:
            raise ForbiddenTransitionError(
                f"Role '{actor.role}' may not anonymize accounts",
                details={"role": actor.role},
            )
        async with self._unit_of_work():
            counts = await self.store.clear_actor_references(actor_id)
        return counts

    async def run_auto_completion(self, today: Optional[date] = None) -> int:
        """
        Complete every approved order whose latest delivery date has passed.

        Idempotent: completed orders no longer match.

        Returns:
            Number of orders completed
        """
        if today is None:
            today = datetime.now(ZoneInfo(settings.SCHEDULER_TIMEZONE)).date()

        completed = 0
        async with self._unit_of_work():
            result = await self.db.execute(
                select(ProductionOrder)
                .where(
                    ProductionOrder.status == OrderStatus.APPROVED.value,
                    ProductionOrder.latest_delivery < today,
                )
                .order_by(ProductionOrder.order_number)
                .with_for_update(skip_locked=True)
            )
            for order in result.scalars().all():
                rule = authorize(SYSTEM_ACTOR, order, OrderStatus.COMPLETED)
                await self._apply(order, rule, SYSTEM_ACTOR, None, order.snapshot())
                completed += 1

        logger.info(f"Auto-completion: {completed} order(s) completed (latest delivery before {today})")
        return completed

    # ==================== Queries ====================

    async def get_order(self, order_id: uuid.UUID, actor: Optional[Actor] = None) -> ProductionOrder:
        """Load an order; with `actor`, only if that actor may see it."""
        if actor is None:
            return await self.store.get(order_id)
        return await self.store.get_visible(order_id, actor)

    async def list_orders(
        self,
        actor: Actor,
        status: Optional[OrderStatus] = None,
        include_archived: bool = False,
        skip: int = 0,
        limit: int = 100,
    ) -> List[ProductionOrder]:
        return await self.store.list_visible(
            actor,
            status=status,
            include_archived=include_archived,
            skip=skip,
            limit=limit,
        )

    async def get_history(self, order_id: uuid.UUID, actor: Optional[Actor] = None) -> List[OrderHistoryEntry]:
        await self.get_order(order_id, actor)
        return await self.history.list_for_order(order_id)

    async def get_location_approvals(
        self,
        order_id: uuid.UUID,
        actor: Optional[Actor] = None,
    ) -> List[LocationApproval]:
        await self.get_order(order_id, actor)
        return await self.ledger.list_for_order(order_id)
