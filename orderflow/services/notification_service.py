"""
Order Notification Service

Decides which notification events a workflow step produces, builds the
event payload from the order snapshot and hands it to the Notifier
(the external email/notification delivery service).

Recipient resolution and rendering belong to the Notifier. The payload
carries an `audience` hint (roles and, for planning events, locations).

Delivery happens after the workflow transaction committed. Failures are
logged and swallowed: a notification never undoes a status change.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List, Dict, Any
import uuid

import httpx

from orderflow.config import settings
from orderflow.core.exceptions import DispatchFailure
from orderflow.core.permissions import Actor
from orderflow.models.order import ProductionOrder, OrderStatus


logger = logging.getLogger(__name__)


class NotificationEventKind(str, Enum):
    """Event kinds handed to the notifier."""
    CREATED = "Created"
    PLANNING_ASSIGNED = "PlanningAssigned"
    APPROVED = "Approved"
    SUPPLY_CHAIN_REJECTED = "SupplyChainRejected"
    CREATOR_REJECTED = "CreatorRejected"
    PLANNING_CORRECTION = "PlanningCorrection"
    CORRECTION = "Correction"
    AUTO_COMPLETED = "AutoCompleted"


# Who the notifier should address, per event
EVENT_AUDIENCE = {
    NotificationEventKind.CREATED: ["supply_chain"],
    NotificationEventKind.PLANNING_ASSIGNED: ["planning"],
    NotificationEventKind.APPROVED: ["creator", "supply_chain"],
    NotificationEventKind.SUPPLY_CHAIN_REJECTED: ["creator"],
    NotificationEventKind.CREATOR_REJECTED: ["supply_chain", "planning"],
    NotificationEventKind.PLANNING_CORRECTION: ["supply_chain"],
    NotificationEventKind.CORRECTION: ["creator"],
    NotificationEventKind.AUTO_COMPLETED: ["creator"],
}

LOCATION_SCOPED_EVENTS = {
    NotificationEventKind.PLANNING_ASSIGNED,
    NotificationEventKind.CREATOR_REJECTED,
}


def events_for_transition(
    order: ProductionOrder,
    previous_status: OrderStatus,
    new_status: OrderStatus,
    actor: Actor,
) -> List[NotificationEventKind]:
    """Notification events produced by a status change."""
    previous_status = OrderStatus(previous_status)
    new_status = OrderStatus(new_status)
    events = []

    if new_status == OrderStatus.PLANNING_REVIEW and previous_status in (
        OrderStatus.SALES_REVIEW, OrderStatus.SUPPLY_CHAIN_REVIEW
    ):
        events.append(NotificationEventKind.PLANNING_ASSIGNED)

    elif new_status == OrderStatus.APPROVED:
        # No approval mail for planning-driven re-approval
        if not actor.is_planning:
            events.append(NotificationEventKind.APPROVED)

    elif new_status == OrderStatus.REJECTED:
        if actor.is_creator_of(order):
            events.append(NotificationEventKind.CREATOR_REJECTED)
        else:
            events.append(NotificationEventKind.SUPPLY_CHAIN_REJECTED)

    elif new_status == OrderStatus.SUPPLY_CHAIN_REVIEW and previous_status in (
        OrderStatus.PLANNING_REVIEW, OrderStatus.APPROVED
    ):
        events.append(NotificationEventKind.PLANNING_CORRECTION)

    elif new_status == OrderStatus.SALES_REVIEW and previous_status == OrderStatus.SUPPLY_CHAIN_REVIEW:
        events.append(NotificationEventKind.CORRECTION)

    elif new_status == OrderStatus.COMPLETED:
        events.append(NotificationEventKind.AUTO_COMPLETED)

    return events


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, Decimal):
        return str(value)
    return value


def build_payload(
    order: ProductionOrder,
    event_kind: NotificationEventKind,
    actor: Actor,
    reason: Optional[str] = None,
    previous_status: Optional[str] = None,
    locations: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """Event payload from an order snapshot (JSON-serializable)."""
    if locations is None:
        locations = order.affected_locations

    audience = {"roles": EVENT_AUDIENCE.get(event_kind, [])}
    if event_kind in LOCATION_SCOPED_EVENTS:
        audience["locations"] = list(locations)

    payload = {
        "order_id": order.id,
        "order_number": order.order_number,
        "customer_name": order.customer_name,
        "article_number": order.article_number,
        "article_description": order.article_description,
        "product_group": order.product_group,
        "product_group_secondary": order.product_group_secondary,
        "total_quantity": order.total_quantity,
        "fixed_quantity": order.fixed_quantity,
        "location_distribution": dict(order.location_distribution or {}),
        "locations": list(locations),
        "earliest_delivery": order.earliest_delivery,
        "latest_delivery": order.latest_delivery,
        "description": order.description,
        "previous_status": previous_status,
        "status": order.status,
        "reason": reason,
        "created_by_id": order.created_by_id,
        "created_by_name": order.created_by_name,
        "actor": actor.as_payload(),
        "audience": audience,
    }
    return {key: _jsonable(value) for key, value in payload.items()}


@dataclass
class PendingNotification:
    """A claimed event waiting for the transaction to commit."""
    event_kind: NotificationEventKind
    order_number: int
    payload: Dict[str, Any] = field(default_factory=dict)


# ==================== Notifiers ====================

class HttpNotifier:
    """POSTs {"event": ..., "payload": ...} to the notification service."""

    def __init__(self, url: str, timeout: float = 5.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def notify(self, event_kind: str, payload: Dict[str, Any]) -> None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    self.url,
                    json={"event": event_kind, "payload": payload},
                )
        except httpx.TimeoutException as e:
            raise DispatchFailure(
                f"Notifier timed out after {self.timeout}s",
                details={"event": event_kind, "error": str(e)},
            ) from e
        except httpx.HTTPError as e:
            raise DispatchFailure(
                f"Notifier unreachable: {e}",
                details={"event": event_kind},
            ) from e

        if not response.is_success:
            raise DispatchFailure(
                f"Notifier returned HTTP {response.status_code}",
                details={"event": event_kind, "status_code": response.status_code},
            )


class LoggingNotifier:
    """Notifier used when no NOTIFIER_URL is configured."""

    async def notify(self, event_kind: str, payload: Dict[str, Any]) -> None:
        logger.info(
            f"[NOTIFICATION] {event_kind} for order #{payload.get('order_number')} "
            f"-> {payload.get('audience')}"
        )


def get_notifier():
    """Notifier from settings."""
    if settings.NOTIFIER_URL:
        return HttpNotifier(settings.NOTIFIER_URL, timeout=settings.NOTIFIER_TIMEOUT_SECONDS)
    return LoggingNotifier()


# ==================== Dispatcher ====================

class NotificationDispatcher:
    """Hands claimed events to the notifier, one at a time."""

    def __init__(self, notifier=None, timeout: Optional[float] = None):
        self.notifier = notifier or get_notifier()
        self.timeout = timeout if timeout is not None else settings.NOTIFIER_TIMEOUT_SECONDS

    async def dispatch(self, event_kind: str, payload: Dict[str, Any]) -> bool:
        """
        Send one event. Returns False on failure; never raises.

        The notifier call is bounded by `timeout`; running out counts
        as a dispatch failure.
        """
        event_kind = NotificationEventKind(event_kind).value
        try:
            try:
                await asyncio.wait_for(self.notifier.notify(event_kind, payload), self.timeout)
            except asyncio.TimeoutError as e:
                raise DispatchFailure(
                    f"Notifier did not answer within {self.timeout}s",
                    details={"event": event_kind},
                ) from e
        except DispatchFailure as e:
            logger.warning(
                f"Notification {event_kind} for order #{payload.get('order_number')} failed: {e.message}"
            )
            return False
        except Exception as e:
            logger.error(
                f"Notification {event_kind} for order #{payload.get('order_number')} failed: {e}",
                exc_info=True,
            )
            return False

        logger.info(f"Notification {event_kind} sent for order #{payload.get('order_number')}")
        return True

    async def deliver(self, pending: List[PendingNotification]) -> int:
        """Send all pending notifications. Returns the number delivered."""
        delivered = 0
        for notification in pending:
            if await self.dispatch(notification.event_kind, notification.payload):
                delivered += 1
        return delivered
