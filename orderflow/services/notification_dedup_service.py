"""
Notification duplicate suppression.

Before an event is handed to the notifier a NotificationRecord is written.
The same (order, event, status, reason) is skipped when it was recorded
within the dedup window, or when another transaction holds the lock for the
same key right now. This is best effort: a rare duplicate is accepted,
a suppressed first notification is not.
"""
import hashlib
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.config import settings
from orderflow.core.locks import try_advisory_xact_lock
from orderflow.core.permissions import Actor
from orderflow.models.notification import NotificationRecord


logger = logging.getLogger(__name__)


def dedup_key_for(
    order_id: uuid.UUID,
    event_kind: str,
    status: str,
    reason: Optional[str] = None,
) -> str:
    """Hex SHA-256 of the event tuple."""
    raw = f"{order_id}|{event_kind}|{status}|{(reason or '').strip()}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class EventDeduplicator:
    def __init__(self, db: AsyncSession, window_minutes: Optional[int] = None):
        self.db = db
        if window_minutes is None:
            window_minutes = settings.NOTIFICATION_DEDUP_WINDOW_MINUTES
        self.window = timedelta(minutes=window_minutes)

    async def recently_sent(self, dedup_key: str, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        result = await self.db.execute(
            select(func.count(NotificationRecord.id)).where(
                NotificationRecord.dedup_key == dedup_key,
                NotificationRecord.created_at >= now - self.window,
            )
        )
        return (result.scalar() or 0) > 0

    async def claim(
        self,
        order_id: uuid.UUID,
        event_kind: str,
        status: str,
        actor: Actor,
        reason: Optional[str] = None,
    ) -> bool:
        """
        Claim the right to dispatch one event.

        Non-blocking: returns False instead of waiting when the event was
        already recorded within the window or is being handled by another
        transaction. On True a NotificationRecord has been added to the
        current transaction.
        """
        dedup_key = dedup_key_for(order_id, event_kind, status, reason)

        if not await try_advisory_xact_lock(self.db, f"notification:{dedup_key}"):
            logger.info(f"Notification {event_kind} for order {order_id} is being sent elsewhere, skipped")
            return False

        now = datetime.now(timezone.utc)
        if await self.recently_sent(dedup_key, now):
            logger.info(f"Duplicate notification {event_kind} for order {order_id} suppressed")
            return False

        self.db.add(NotificationRecord(
            order_id=order_id,
            event_kind=event_kind,
            order_status=status,
            reason=reason,
            dedup_key=dedup_key,
            actor_id=actor.id,
            actor_name=actor.name,
            created_at=now,
        ))
        await self.db.flush()

        logger.debug(f"Notification {event_kind} for order {order_id} claimed")
        return True
