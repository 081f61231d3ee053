"""SMS transports: Twilio-compatible REST API and the dev-mode stand-in."""

import logging

import httpx

from dispatch_service.config import TwilioConfig
from dispatch_service.log import mask_phone
from dispatch_service.transports.base import (
    SIMULATED_TAG,
    DeliveryResult,
    DeliveryTransport,
    OutboundMessage,
)

logger = logging.getLogger(__name__)


class TwilioSmsTransport(DeliveryTransport):
    """Places one SMS per call through the provider's Messages resource.

    A non-2xx answer is a failed delivery; its body is kept verbatim as
    the error text. There is no retry.
    """

    def __init__(self, config: TwilioConfig, http_client: httpx.Client) -> None:
        if not config.is_configured:
            raise ValueError("Twilio credentials are incomplete")
        self._account_sid = config.account_sid or ""
        self._auth_token = config.auth_token or ""
        self._from_number = config.phone_number or ""
        self._url = (
            f"{config.api_base_url.rstrip('/')}/2010-04-01/Accounts/"
            f"{self._account_sid}/Messages.json"
        )
        self._http = http_client

    def send(self, destination: str, content: OutboundMessage) -> DeliveryResult:
        log_ctx = {"to": mask_phone(destination), "message_id": content.message_id}
        try:
            response = self._http.post(
                self._url,
                data={
                    "To": destination,
                    "From": self._from_number,
                    "Body": content.text,
                },
                auth=(self._account_sid, self._auth_token),
            )
        except httpx.HTTPError as exc:
            logger.warning("SMS request failed", extra={**log_ctx, "error": str(exc)})
            return DeliveryResult(
                success=False, details=str(exc) or exc.__class__.__name__
            )

        if not response.is_success:
            logger.warning(
                "SMS rejected by provider",
                extra={**log_ctx, "status_code": response.status_code},
            )
            return DeliveryResult(success=False, details=response.text)

        try:
            sid = response.json().get("sid")
        except ValueError:
            sid = None
        logger.info("SMS accepted", extra={**log_ctx, "provider_message_id": sid})
        return DeliveryResult(
            success=True, details="SMS accepted", provider_message_id=sid
        )


class SimulatedSmsTransport(DeliveryTransport):
    """Dev mode: logs the would-be SMS and reports success."""

    simulated = True

    def send(self, destination: str, content: OutboundMessage) -> DeliveryResult:
        preview = content.text[:50] if content.text else "(empty)"
        logger.info(
            "SMS sent (simulated)",
            extra={
                "to": mask_phone(destination),
                "message_id": content.message_id,
                "body_preview": preview,
            },
        )
        return DeliveryResult(
            success=True,
            details=f"{SIMULATED_TAG} SMS provider not configured; nothing was sent",
            simulated=True,
        )
