"""
Status Aggregator

Derives an order's status from its planning approvals: no pending rows
means APPROVED, otherwise PLANNING_REVIEW. Runs after every ledger change.
"""
import logging
from typing import Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.core.locks import try_advisory_xact_lock
from orderflow.core.permissions import SYSTEM_ACTOR
from orderflow.models.order import ProductionOrder, OrderStatus
from orderflow.services.history_service import OrderHistoryService
from orderflow.services.location_approval_service import LocationApprovalLedger
from orderflow.services.order_state_machine import authorize, get_transition_action


logger = logging.getLogger(__name__)

AGGREGATED_STATUSES = {OrderStatus.PLANNING_REVIEW, OrderStatus.APPROVED}


def derive_target_status(pending_count: int) -> OrderStatus:
    """Status implied by the number of pending location approvals."""
    if pending_count == 0:
        return OrderStatus.APPROVED
    return OrderStatus.PLANNING_REVIEW


class StatusAggregator:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.ledger = LocationApprovalLedger(db)
        self.history = OrderHistoryService(db)

    async def refresh(self, order: ProductionOrder) -> Optional[Tuple[OrderStatus, OrderStatus]]:
        """
        Bring the order status in line with its ledger.

        Writes nothing when the order already has the derived status, or when
        another transaction is aggregating the same order right now.

        Returns:
            (previous, new) status if the order changed, else None
        """
        current = order.status_enum
        if current not in AGGREGATED_STATUSES:
            return None

        if not await try_advisory_xact_lock(self.db, f"status:{order.id}"):
            logger.info(f"Status aggregation for order {order.order_number} already running, skipped")
            return None

        pending = await self.ledger.pending_count(order.id)
        target = derive_target_status(pending)
        if target == current:
            logger.debug(f"Order {order.order_number} already {current.value} ({pending} pending)")
            return None

        # APPROVED -> PLANNING_REVIEW (rows added to an approved order) has no table entry
        if target == OrderStatus.APPROVED:
            authorize(SYSTEM_ACTOR, order, target)

        order.status = target.value
        await self.db.flush()

        await self.history.log(
            order_id=order.id,
            actor=SYSTEM_ACTOR,
            action=get_transition_action(current, target),
            previous_status=current.value,
            new_status=target.value,
        )

        logger.info(
            f"Order {order.order_number} status derived from approvals: "
            f"{current.value} -> {target.value} ({pending} pending)"
        )
        return current, target
