"""Transport registry: one delivery transport per channel.

Live or simulated transports are chosen once, when the registry is built
from configuration. Email has no built-in transport; register one under
``Channel.EMAIL`` to enable it.
"""

import logging

import httpx

from shared.enums import Channel

from dispatch_service.config import FirebaseConfig, TwilioConfig
from dispatch_service.errors import ChannelUnavailable
from dispatch_service.transports.base import (
    SIMULATED_TAG,
    DeliveryResult,
    DeliveryTransport,
    OutboundMessage,
)
from dispatch_service.transports.oauth import ServiceAccountTokenProvider
from dispatch_service.transports.push import FcmPushTransport, SimulatedPushTransport
from dispatch_service.transports.sms import SimulatedSmsTransport, TwilioSmsTransport

__all__ = [
    "SIMULATED_TAG",
    "DeliveryResult",
    "DeliveryTransport",
    "OutboundMessage",
    "TransportRegistry",
    "create_default_registry",
]

logger = logging.getLogger(__name__)


class TransportRegistry:
    """Maps channel names to transport instances."""

    def __init__(self) -> None:
        self._transports: dict[str, DeliveryTransport] = {}

    def register(self, channel: str, transport: DeliveryTransport) -> None:
        self._transports[channel] = transport

    def get(self, channel: str) -> DeliveryTransport:
        """Return the transport for a channel.

        Raises ChannelUnavailable if nothing is registered for it.
        """
        try:
            return self._transports[channel]
        except KeyError:
            raise ChannelUnavailable(
                f"No delivery transport configured for channel {channel!r}",
                channel=channel,
            ) from None

    def __contains__(self, channel: str) -> bool:
        return channel in self._transports


def create_default_registry(
    twilio: TwilioConfig,
    firebase: FirebaseConfig,
    http_client: httpx.Client,
) -> TransportRegistry:
    """Build SMS and push transports, falling back to dev mode per channel.

    Missing credentials are not an error: that channel gets its simulated
    transport. A service account that is present but unusable is an error.
    """
    registry = TransportRegistry()

    if twilio.is_configured:
        registry.register(Channel.SMS, TwilioSmsTransport(twilio, http_client))
    else:
        logger.warning("Twilio credentials not configured, SMS runs in dev mode")
        registry.register(Channel.SMS, SimulatedSmsTransport())

    if firebase.is_configured:
        info = firebase.service_account_info()
        token_provider = ServiceAccountTokenProvider(
            info, firebase.token_url, http_client
        )
        registry.register(
            Channel.PUSH,
            FcmPushTransport(
                info["project_id"],
                token_provider,
                http_client,
                api_base_url=firebase.api_base_url,
            ),
        )
    else:
        logger.warning("Firebase service account not configured, push runs in dev mode")
        registry.register(Channel.PUSH, SimulatedPushTransport())

    return registry
