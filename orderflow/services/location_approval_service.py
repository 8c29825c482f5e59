"""
Location Approval Ledger

One LocationApproval row per (order, location) with a quantity above zero.
Rows are seeded when an order enters planning review, signed off by the
planning team of each location and wiped when the order is corrected back.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Iterable

from sqlalchemy import select, delete, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.core.exceptions import (
    ForbiddenTransitionError,
    InvalidTransitionError,
    OrderNotFoundError,
)
from orderflow.core.permissions import Actor
from orderflow.models.location import Location
from orderflow.models.location_approval import LocationApproval
from orderflow.models.order import ProductionOrder, OrderStatus


logger = logging.getLogger(__name__)


class LocationApprovalLedger:
    """Planning sign-offs per order and location."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _resolve_location_codes(self, keys: Iterable[str]) -> Dict[str, str]:
        """Map distribution keys to location codes.

        Distributions captured by site name are translated through the active
        location master records; keys without a match are used as codes.
        """
        keys = list(keys)
        if not keys:
            return {}
        result = await self.db.execute(
            select(Location.name, Location.code).where(
                Location.active == True,  # noqa: E712
                Location.name.in_(keys),
            )
        )
        by_name = {name: code for name, code in result.all()}
        return {key: by_name.get(key, key) for key in keys}

    async def seed(self, order_id: uuid.UUID, distribution: Dict[str, int]) -> List[str]:
        """
        Create the missing approval rows for every location with quantity > 0.

        Existing rows (approved or not) are left untouched, so seeding twice
        with the same distribution yields the same ledger.

        Returns:
            Location codes the ledger requires for this distribution
        """
        keys = [key for key, quantity in (distribution or {}).items() if quantity and int(quantity) > 0]
        codes_by_key = await self._resolve_location_codes(keys)
        locations = sorted(set(codes_by_key.values()))
        if not locations:
            return []

        now = datetime.now(timezone.utc)
        rows = [
            {
                "id": uuid.uuid4(),
                "order_id": order_id,
                "location": location,
                "required": True,
                "approved": False,
                "created_at": now,
            }
            for location in locations
        ]

        conn = await self.db.connection()
        dialect = postgresql if conn.dialect.name == "postgresql" else sqlite
        stmt = (
            dialect.insert(LocationApproval)
            .values(rows)
            .on_conflict_do_nothing(index_elements=["order_id", "location"])
        )
        await self.db.execute(stmt)

        logger.info(f"Seeded planning approvals for order {order_id}: {', '.join(locations)}")
        return locations

    async def reset(self, order_id: uuid.UUID) -> int:
        """Delete all approval rows of an order (correction)."""
        result = await self.db.execute(
            delete(LocationApproval)
            .where(LocationApproval.order_id == order_id)
            .execution_options(synchronize_session=False)
        )
        removed = result.rowcount or 0
        logger.info(f"Reset {removed} planning approval(s) for order {order_id}")
        return removed

    async def approve(self, order: ProductionOrder, location: str, actor: Actor) -> bool:
        """
        Record the sign-off of one location.

        Returns:
            True if the row changed, False if it was already approved

        Raises:
            InvalidTransitionError: Order is not in planning review
            ForbiddenTransitionError: Actor is not planning for `location`
            OrderNotFoundError: The order has no approval row for `location`
        """
        if order.status_enum != OrderStatus.PLANNING_REVIEW:
            raise InvalidTransitionError(
                f"Order in '{order.status}' status has no open planning approvals",
                details={"current_status": order.status, "location": location},
            )

        if not actor.can_act_for_location(location):
            raise ForbiddenTransitionError(
                f"Role '{actor.role}' may not approve for location '{location}'",
                details={"role": actor.role, "location": location},
            )

        result = await self.db.execute(
            select(LocationApproval)
            .where(
                LocationApproval.order_id == order.id,
                LocationApproval.location == location,
            )
            .with_for_update()
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise OrderNotFoundError(
                f"Order {order.order_number} has no planning approval for location '{location}'",
                order_id=order.id,
                details={"location": location},
            )

        if row.approved:
            logger.info(f"Location {location} of order {order.order_number} already approved")
            return False

        row.approved = True
        row.approved_by_id = actor.id
        row.approved_by_name = actor.name
        row.approved_at = datetime.now(timezone.utc)
        await self.db.flush()

        logger.info(f"Location {location} of order {order.order_number} approved by {actor.name}")
        return True

    async def pending_count(self, order_id: uuid.UUID) -> int:
        """Number of required approvals still missing."""
        result = await self.db.execute(
            select(func.count(LocationApproval.id)).where(
                LocationApproval.order_id == order_id,
                LocationApproval.required == True,  # noqa: E712
                LocationApproval.approved == False,  # noqa: E712
            )
        )
        return result.scalar() or 0

    async def list_for_order(self, order_id: uuid.UUID) -> List[LocationApproval]:
        result = await self.db.execute(
            select(LocationApproval)
            .where(LocationApproval.order_id == order_id)
            .order_by(LocationApproval.location)
        )
        return list(result.scalars().all())

    async def locations_for_order(self, order_id: uuid.UUID) -> List[str]:
        result = await self.db.execute(
            select(LocationApproval.location)
            .where(LocationApproval.order_id == order_id)
            .order_by(LocationApproval.location)
        )
        return list(result.scalars().all())

    async def is_pending_for_location(self, order_id: uuid.UUID, location: str) -> bool:
        result = await self.db.execute(
            select(func.count(LocationApproval.id)).where(
                LocationApproval.order_id == order_id,
                LocationApproval.location == location,
                LocationApproval.required == True,  # noqa: E712
                LocationApproval.approved == False,  # noqa: E712
            )
        )
        return (result.scalar() or 0) > 0
