"""Push transports: FCM HTTP v1 API and the dev-mode stand-in."""

import logging
from typing import Any

import httpx

from dispatch_service.transports.base import (
    SIMULATED_TAG,
    DeliveryResult,
    DeliveryTransport,
    OutboundMessage,
)
from dispatch_service.transports.oauth import (
    AccessTokenError,
    ServiceAccountTokenProvider,
)

logger = logging.getLogger(__name__)

# Error codes meaning the token will never be deliverable again.
INVALID_TOKEN_CODES = frozenset({"UNREGISTERED", "INVALID_ARGUMENT"})

WEBPUSH_ICON = "/favicon.ico"


def build_push_payload(token: str, content: OutboundMessage) -> dict[str, Any]:
    return {
        "message": {
            "token": token,
            "notification": {"title": content.title, "body": content.body},
            "data": {
                "messageId": str(content.message_id) if content.message_id else "",
                "link": content.link or "",
            },
            "webpush": {
                "notification": {"icon": WEBPUSH_ICON, "badge": WEBPUSH_ICON},
            },
        }
    }


def extract_error_code(response: httpx.Response) -> str | None:
    """Pull the FCM error code out of an error response, if there is one.

    Prefers ``error.details[0].errorCode`` and falls back to
    ``error.status``.
    """
    try:
        data = response.json()
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None

    error = data.get("error") or {}
    details = error.get("details") or []
    if details and isinstance(details[0], dict) and details[0].get("errorCode"):
        return details[0]["errorCode"]
    return error.get("status")


class FcmPushTransport(DeliveryTransport):
    def __init__(
        self,
        project_id: str,
        token_provider: ServiceAccountTokenProvider,
        http_client: httpx.Client,
        api_base_url: str = "https://fcm.googleapis.com",
    ) -> None:
        self._url = (
            f"{api_base_url.rstrip('/')}/v1/projects/{project_id}/messages:send"
        )
        self._token_provider = token_provider
        self._http = http_client

    def send(self, destination: str, content: OutboundMessage) -> DeliveryResult:
        log_ctx = {"message_id": content.message_id, "token_suffix": destination[-8:]}
        try:
            access_token = self._token_provider.get_token()
        except AccessTokenError as exc:
            logger.error("Push access token unavailable", extra={**log_ctx, "error": str(exc)})
            return DeliveryResult(success=False, details=str(exc))

        try:
            response = self._http.post(
                self._url,
                json=build_push_payload(destination, content),
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as exc:
            logger.warning("Push request failed", extra={**log_ctx, "error": str(exc)})
            return DeliveryResult(
                success=False, details=str(exc) or exc.__class__.__name__
            )

        if response.is_success:
            try:
                name = response.json().get("name")
            except ValueError:
                name = None
            logger.info("Push accepted", extra={**log_ctx, "provider_message_id": name})
            return DeliveryResult(
                success=True, details="Push accepted", provider_message_id=name
            )

        if response.status_code == 401:
            self._token_provider.invalidate()

        error_code = extract_error_code(response)
        invalid = error_code in INVALID_TOKEN_CODES
        logger.warning(
            "Push rejected by provider",
            extra={
                **log_ctx,
                "status_code": response.status_code,
                "error_code": error_code,
                "token_invalid": invalid,
            },
        )
        return DeliveryResult(
            success=False, details=response.text, destination_invalid=invalid
        )


class SimulatedPushTransport(DeliveryTransport):
    """Dev mode: logs the would-be push and reports success."""

    simulated = True

    def send(self, destination: str, content: OutboundMessage) -> DeliveryResult:
        logger.info(
            "Push sent (simulated)",
            extra={
                "message_id": content.message_id,
                "token_suffix": destination[-8:],
                "title": content.title,
            },
        )
        return DeliveryResult(
            success=True,
            details=f"{SIMULATED_TAG} push provider not configured; nothing was sent",
            simulated=True,
        )
