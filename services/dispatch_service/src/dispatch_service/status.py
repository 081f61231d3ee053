"""Recipient aggregate status, derived from the delivery log."""

import logging
from collections.abc import Iterable, Mapping

from sqlalchemy.orm import Session

from shared.db.models import MessageRecipient
from shared.db.repositories import DeliveryLogRepository, RecipientRepository
from shared.enums import DeliveryStatus

logger = logging.getLogger(__name__)


def reduce_recipient_status(
    channels_attempted: Iterable[str],
    terminal: Mapping[str, str],
) -> DeliveryStatus:
    """Fold per-channel terminal outcomes into one recipient status.

    ``delivered`` as soon as any channel delivered; ``failed`` only once
    every attempted channel has a terminal entry and none delivered;
    ``pending`` otherwise.
    """
    if any(status == DeliveryStatus.DELIVERED for status in terminal.values()):
        return DeliveryStatus.DELIVERED

    attempted = set(channels_attempted)
    if attempted and attempted.issubset(terminal):
        return DeliveryStatus.FAILED
    return DeliveryStatus.PENDING


class RecipientStatusUpdater:
    """Recomputes a recipient's status after each terminal log write."""

    def __init__(self, session: Session) -> None:
        self._recipients = RecipientRepository(session)
        self._logs = DeliveryLogRepository(session)

    def apply(self, recipient: MessageRecipient) -> DeliveryStatus:
        terminal = self._logs.terminal_channels(recipient.id)
        new_status = reduce_recipient_status(recipient.channels_attempted, terminal)

        # Delivered is final even if a later channel fails.
        if recipient.status == DeliveryStatus.DELIVERED:
            return DeliveryStatus.DELIVERED

        if new_status != recipient.status:
            logger.info(
                "Recipient status changed",
                extra={
                    "recipient_id": str(recipient.id),
                    "from_status": recipient.status,
                    "to_status": str(new_status),
                },
            )
            self._recipients.update_status(recipient, new_status)
        return new_status
