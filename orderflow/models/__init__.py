from orderflow.models.order import ProductionOrder, OrderStatus, OrderNumberSequence
from orderflow.models.location import Location
from orderflow.models.location_approval import LocationApproval
from orderflow.models.order_history import OrderHistoryEntry
from orderflow.models.notification import NotificationRecord

__all__ = [
    "ProductionOrder",
    "OrderStatus",
    "OrderNumberSequence",
    "Location",
    "LocationApproval",
    "OrderHistoryEntry",
    "NotificationRecord",
]
