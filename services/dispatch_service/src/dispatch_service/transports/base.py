"""Channel transport interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import ClassVar
from uuid import UUID

from shared.db.models import Message

from dispatch_service.renderer import format_sms_body

# Prefix on every simulated result so a dev-mode "delivered" row is never
# mistaken for a provider acknowledgement.
SIMULATED_TAG = "[simulated]"


@dataclass(frozen=True, slots=True)
class OutboundMessage:
    """What a transport needs to know about the content it sends."""

    title: str
    body: str
    text: str
    link: str | None = None
    message_id: UUID | None = None

    @classmethod
    def from_message(cls, message: Message) -> "OutboundMessage":
        return cls(
            title=message.title,
            body=message.body,
            text=format_sms_body(message),
            link=message.link,
            message_id=message.id,
        )

    @classmethod
    def plain(cls, text: str) -> "OutboundMessage":
        return cls(title="", body=text, text=text)


@dataclass(frozen=True, slots=True)
class DeliveryResult:
    """Outcome of a delivery attempt to one destination."""

    success: bool
    details: str
    provider_message_id: str | None = None
    simulated: bool = False
    # Provider says the destination can never succeed (dead push token).
    destination_invalid: bool = False


class DeliveryTransport(ABC):
    """Sends content to one destination over one channel."""

    simulated: ClassVar[bool] = False

    @abstractmethod
    def send(self, destination: str, content: OutboundMessage) -> DeliveryResult:
        """Attempt one delivery.

        Implementations must not raise for provider or network problems;
        they return ``DeliveryResult(success=False, ...)`` carrying the
        provider's error text instead.
        """
