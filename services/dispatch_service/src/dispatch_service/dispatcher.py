"""Dispatch orchestrator: fans a message out to its recipients on one channel."""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from shared.db.models import MessageRecipient
from shared.db.repositories import (
    DeliveryLogRepository,
    MessageRepository,
    ProfileRepository,
    PushTokenRepository,
    RecipientRepository,
)
from shared.enums import Channel, DeliveryStatus

from dispatch_service.errors import ResourceNotFound
from dispatch_service.lock import DispatchLock
from dispatch_service.publisher import KafkaStatusPublisher
from dispatch_service.status import RecipientStatusUpdater
from dispatch_service.tokens import TokenLifecycleManager
from dispatch_service.transports import (
    DeliveryResult,
    DeliveryTransport,
    OutboundMessage,
    TransportRegistry,
)

logger = logging.getLogger(__name__)

SENT = "sent"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass(slots=True)
class DispatchSummary:
    """Per-run counts returned to the caller. Not persisted."""

    sent: int = 0
    failed: int = 0
    skipped: int = 0

    def record(self, outcome: str) -> None:
        if outcome == SENT:
            self.sent += 1
        elif outcome == FAILED:
            self.failed += 1
        else:
            self.skipped += 1

    def as_dict(self) -> dict[str, int]:
        return {"sent": self.sent, "failed": self.failed, "skipped": self.skipped}


class Dispatcher:
    """Delivers a message to every recipient still owed a given channel.

    For each candidate recipient: resolve destinations (skip silently if
    there are none), log ``pending``, try destinations until one succeeds,
    log exactly one terminal entry, recompute the recipient status, then
    publish the outcome. One recipient's failure never stops the batch.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        registry: TransportRegistry,
        status_publisher: KafkaStatusPublisher,
        dispatch_lock: DispatchLock,
        max_workers: int = 1,
    ) -> None:
        self._session_factory = session_factory
        self._registry = registry
        self._status_publisher = status_publisher
        self._lock = dispatch_lock
        self._max_workers = max(1, max_workers)

    def dispatch_sms(self, message_id: UUID) -> DispatchSummary:
        return self.dispatch(message_id, Channel.SMS)

    def dispatch_push(self, message_id: UUID) -> DispatchSummary:
        return self.dispatch(message_id, Channel.PUSH)

    def dispatch(self, message_id: UUID, channel: str) -> DispatchSummary:
        """Run one dispatch pass for (message, channel).

        Raises ChannelUnavailable, DispatchInProgress or ResourceNotFound;
        any of those aborts the whole run before a single send.
        """
        transport = self._registry.get(channel)
        log_ctx: dict[str, Any] = {"message_id": str(message_id), "channel": channel}

        with self._lock.hold(message_id, channel) as claim:
            with self._session_factory() as session:
                message = MessageRepository(session).get_by_id(message_id)
                if message is None:
                    raise ResourceNotFound(
                        "Message not found", messageId=str(message_id)
                    )
                content = OutboundMessage.from_message(message)
                candidate_ids = [
                    r.id
                    for r in RecipientRepository(session).list_dispatch_candidates(
                        message_id, channel
                    )
                ]

            logger.info(
                "Dispatch started",
                extra={
                    **log_ctx,
                    "candidates": len(candidate_ids),
                    "simulated": transport.simulated,
                },
            )

            summary = DispatchSummary()
            if self._max_workers > 1 and len(candidate_ids) > 1:
                with ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix=f"dispatch-{channel}",
                ) as pool:
                    outcomes = pool.map(
                        lambda rid: self._process(rid, channel, content, transport),
                        candidate_ids,
                    )
                    for outcome in outcomes:
                        summary.record(outcome)
                        claim.refresh()
            else:
                for rid in candidate_ids:
                    summary.record(self._process(rid, channel, content, transport))
                    claim.refresh()

        logger.info("Dispatch complete", extra={**log_ctx, **summary.as_dict()})
        return summary

    def _process(
        self,
        recipient_id: UUID,
        channel: str,
        content: OutboundMessage,
        transport: DeliveryTransport,
    ) -> str:
        try:
            return self._deliver_to_recipient(recipient_id, channel, content, transport)
        except Exception as exc:
            logger.exception(
                "Recipient processing failed",
                extra={"recipient_id": str(recipient_id), "channel": channel},
            )
            self._record_failure(recipient_id, channel, exc)
            return FAILED

    def _record_failure(
        self, recipient_id: UUID, channel: str, exc: Exception
    ) -> None:
        """Close out a recipient whose processing blew up mid-run."""
        try:
            with self._session_factory() as session:
                recipient = RecipientRepository(session).get_by_id(recipient_id)
                logs = DeliveryLogRepository(session)
                if recipient is None or logs.has_terminal(recipient_id, channel):
                    return
                if not any(
                    entry.channel == channel
                    for entry in logs.list_for_recipient(recipient_id)
                ):
                    logs.append(
                        recipient.message_id,
                        recipient.id,
                        channel,
                        DeliveryStatus.PENDING,
                    )
                logs.append(
                    recipient.message_id,
                    recipient.id,
                    channel,
                    DeliveryStatus.FAILED,
                    error_message=str(exc) or exc.__class__.__name__,
                )
                RecipientStatusUpdater(session).apply(recipient)
                session.commit()
        except SQLAlchemyError:
            logger.exception(
                "Could not record recipient failure",
                extra={"recipient_id": str(recipient_id), "channel": channel},
            )

    def _deliver_to_recipient(
        self,
        recipient_id: UUID,
        channel: str,
        content: OutboundMessage,
        transport: DeliveryTransport,
    ) -> str:
        with self._session_factory() as session:
            recipient = RecipientRepository(session).get_by_id(recipient_id)
            if recipient is None:
                return SKIPPED

            log_ctx = {
                "message_id": str(recipient.message_id),
                "recipient_id": str(recipient.id),
                "user_id": str(recipient.user_id),
                "channel": channel,
            }

            destinations = self._resolve_destinations(session, recipient, channel)
            if not destinations:
                logger.info("Skipping recipient, no destination", extra=log_ctx)
                return SKIPPED

            logs = DeliveryLogRepository(session)
            logs.append(
                recipient.message_id, recipient.id, channel, DeliveryStatus.PENDING
            )
            session.commit()

            try:
                result = self._attempt(
                    session, recipient, channel, destinations, content, transport
                )
            except Exception as exc:
                logger.exception("Transport error", extra=log_ctx)
                result = DeliveryResult(
                    success=False, details=str(exc) or exc.__class__.__name__
                )

            terminal = (
                DeliveryStatus.DELIVERED if result.success else DeliveryStatus.FAILED
            )
            # Simulated successes carry the tag in error_message.
            error_message = (
                result.details if (not result.success or result.simulated) else None
            )
            logs.append(
                recipient.message_id,
                recipient.id,
                channel,
                terminal,
                provider_message_id=result.provider_message_id,
                error_message=error_message,
            )
            recipient_status = RecipientStatusUpdater(session).apply(recipient)
            session.commit()

            message_id = recipient.message_id
            user_id = recipient.user_id

        if result.success:
            logger.info("Delivery succeeded", extra={**log_ctx, "simulated": result.simulated})
        else:
            logger.warning("Delivery failed", extra={**log_ctx, "reason": result.details})

        self._status_publisher.publish_status(
            message_id=message_id,
            recipient_id=recipient_id,
            user_id=user_id,
            channel=channel,
            status=terminal,
            recipient_status=recipient_status,
            provider_message_id=result.provider_message_id,
            error_message=error_message,
            simulated=result.simulated,
        )
        return SENT if result.success else FAILED

    def _attempt(
        self,
        session: Session,
        recipient: MessageRecipient,
        channel: str,
        destinations: list[str],
        content: OutboundMessage,
        transport: DeliveryTransport,
    ) -> DeliveryResult:
        """Try each destination in order; stop at the first success."""
        result = DeliveryResult(success=False, details="No destination")
        for destination in destinations:
            result = transport.send(destination, content)
            if result.success:
                return result
            if result.destination_invalid and channel == Channel.PUSH:
                TokenLifecycleManager(session).prune(recipient.user_id, destination)
        return result

    @staticmethod
    def _resolve_destinations(
        session: Session, recipient: MessageRecipient, channel: str
    ) -> list[str]:
        if channel == Channel.PUSH:
            tokens = PushTokenRepository(session).list_for_user(recipient.user_id)
            return [t.token for t in tokens]

        profile = ProfileRepository(session).get_by_id(recipient.user_id)
        if profile is None:
            return []
        if channel == Channel.SMS:
            if profile.phone_verified and profile.phone_e164:
                return [profile.phone_e164]
            return []
        if channel == Channel.EMAIL:
            return [profile.email] if profile.email else []
        return []
