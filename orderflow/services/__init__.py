# Services module
from orderflow.services.order_store import OrderStore
from orderflow.services.location_approval_service import LocationApprovalLedger
from orderflow.services.status_aggregator import StatusAggregator, derive_target_status
from orderflow.services.notification_dedup_service import EventDeduplicator
from orderflow.services.notification_service import NotificationDispatcher, NotificationEventKind
from orderflow.services.history_service import OrderHistoryService
from orderflow.services.workflow_service import WorkflowService

__all__ = [
    "OrderStore",
    "LocationApprovalLedger",
    "StatusAggregator",
    "derive_target_status",
    "EventDeduplicator",
    "NotificationDispatcher",
    "NotificationEventKind",
    "OrderHistoryService",
    "WorkflowService",
]
