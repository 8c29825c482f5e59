from typing import Optional, Dict, Any, List
import uuid

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.core.permissions import Actor
from orderflow.models.order_history import OrderHistoryEntry


class OrderHistoryService:
    """
    Append-only history of everything that happens to an order.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        order_id: uuid.UUID,
        actor: Actor,
        action: str,
        previous_status: Optional[str] = None,
        new_status: Optional[str] = None,
        reason: Optional[str] = None,
        old_data: Optional[Dict[str, Any]] = None,
        new_data: Optional[Dict[str, Any]] = None,
    ) -> OrderHistoryEntry:
        """
        Append a history entry.

        Args:
            order_id: The order the entry belongs to
            actor: Who performed the action (system actor for automatic steps)
            action: Human-readable action label ("Submit for Review", ...)
            previous_status: Status before the action
            new_status: Status after the action
            reason: Rejection/correction reason, if any
            old_data: Snapshot before the change
            new_data: Snapshot after the change

        Returns:
            The created OrderHistoryEntry
        """
        last = await self.db.scalar(
            select(func.max(OrderHistoryEntry.sequence))
            .where(OrderHistoryEntry.order_id == order_id)
        )
        entry = OrderHistoryEntry(
            order_id=order_id,
            sequence=(last or 0) + 1,
            actor_id=actor.id,
            actor_name=actor.name,
            actor_role=actor.role,
            action=action,
            previous_status=previous_status,
            new_status=new_status,
            reason=reason,
            old_data=old_data,
            new_data=new_data,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def list_for_order(self, order_id: uuid.UUID) -> List[OrderHistoryEntry]:
        """History of an order, oldest first."""
        result = await self.db.execute(
            select(OrderHistoryEntry)
            .where(OrderHistoryEntry.order_id == order_id)
            .order_by(OrderHistoryEntry.sequence, OrderHistoryEntry.created_at)
        )
        return list(result.scalars().all())
