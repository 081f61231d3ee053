from typing import Any, Self
from uuid import UUID

from pydantic import BaseModel, model_validator

from shared.enums import Channel, DeliveryStatus
from shared.events.base import EventMetadata

DELIVERY_STATUS_EVENT = "delivery.status"


class DeliveryStatusPayload(BaseModel):
    message_id: UUID
    recipient_id: UUID
    user_id: UUID
    channel: Channel
    status: DeliveryStatus
    recipient_status: DeliveryStatus
    provider_message_id: str | None = None
    error_message: str | None = None
    simulated: bool = False


class DeliveryStatusEvent(BaseModel):
    """Published once per terminal delivery log entry."""

    metadata: EventMetadata
    payload: DeliveryStatusPayload

    @model_validator(mode="before")
    @classmethod
    def _set_event_type(cls, data: Any) -> Any:
        if isinstance(data, dict):
            meta = data.setdefault("metadata", {})
            if isinstance(meta, dict):
                meta.setdefault("event_type", DELIVERY_STATUS_EVENT)
        return data

    @model_validator(mode="after")
    def _check_event_type(self) -> Self:
        if self.metadata.event_type != DELIVERY_STATUS_EVENT:
            raise ValueError(
                f"Expected event_type={DELIVERY_STATUS_EVENT!r}, "
                f"got {self.metadata.event_type!r}"
            )
        return self
