from shared.events.base import EventMetadata
from shared.events.delivery import (
    DELIVERY_STATUS_EVENT,
    DeliveryStatusEvent,
    DeliveryStatusPayload,
)

__all__ = [
    "EventMetadata",
    "DELIVERY_STATUS_EVENT",
    "DeliveryStatusEvent",
    "DeliveryStatusPayload",
]
