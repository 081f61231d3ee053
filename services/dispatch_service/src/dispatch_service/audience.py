"""Audience resolution and message fan-out."""

import datetime
import logging
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from shared.db.base import utcnow
from shared.db.models import Message
from shared.db.repositories import (
    MessageRepository,
    ProfileRepository,
    RecipientRepository,
)
from shared.enums import AUTHOR_ROLES, AudienceType, Role

from dispatch_service.errors import Forbidden, InvalidRequest, Unauthorized

logger = logging.getLogger(__name__)


def resolve_audience(
    session: Session,
    audience_type: str,
    audience_filter: dict[str, Any] | None,
) -> list[UUID]:
    """Turn an audience descriptor into the list of target user ids.

    ``role`` reads ``filter["value"]``; ``individual`` reads
    ``filter["user_ids"]`` and drops ids with no profile. ``class`` needs
    class membership data the store does not hold, so it is rejected.
    """
    profiles = ProfileRepository(session)
    audience_filter = audience_filter or {}

    if audience_type == AudienceType.ALL:
        return profiles.list_ids()

    if audience_type == AudienceType.ROLE:
        role = audience_filter.get("value")
        if not isinstance(role, str) or role not in set(Role):
            raise InvalidRequest(
                "Role audience needs filter.value set to a known role",
                supported=sorted(r.value for r in Role),
            )
        return profiles.list_ids(role=role)

    if audience_type == AudienceType.INDIVIDUAL:
        raw_ids = audience_filter.get("user_ids") or []
        if not isinstance(raw_ids, list):
            raise InvalidRequest("filter.user_ids must be a list of UUIDs")
        try:
            user_ids = [UUID(str(v)) for v in raw_ids]
        except ValueError as exc:
            raise InvalidRequest("filter.user_ids must be UUIDs") from exc
        return profiles.existing_ids(user_ids)

    if audience_type == AudienceType.CLASS:
        raise InvalidRequest("Class audiences are not supported")

    raise InvalidRequest(f"Unknown audience type: {audience_type!r}")


def create_message(
    session: Session,
    *,
    sender_id: UUID,
    title: str,
    body: str,
    link: str | None,
    audience_type: str,
    audience_filter: dict[str, Any] | None,
    channels: list[str],
    scheduled_at: datetime.datetime | None = None,
    recurrence: dict[str, Any] | None = None,
) -> tuple[Message, int]:
    """Insert a message and one pending recipient per audience member.

    Returns the message and the number of recipients created. The caller
    commits.
    """
    sender = ProfileRepository(session).get_by_id(sender_id)
    if sender is None:
        raise Unauthorized("Unauthorized")
    if sender.role not in AUTHOR_ROLES:
        raise Forbidden("Only admins and teachers can send announcements")
    if not channels:
        raise InvalidRequest("At least one channel is required")

    user_ids = resolve_audience(session, audience_type, audience_filter)

    message = MessageRepository(session).create(
        Message(
            sender_id=sender_id,
            title=title,
            body=body,
            link=link,
            audience_type=audience_type,
            audience_filter=audience_filter,
            channels=list(channels),
            scheduled_at=scheduled_at,
            recurrence=recurrence,
            sent_at=utcnow(),
        )
    )
    recipients = RecipientRepository(session).create_many(
        message.id, user_ids, list(channels)
    )

    logger.info(
        "Message created",
        extra={
            "message_id": str(message.id),
            "sender_id": str(sender_id),
            "audience_type": audience_type,
            "channels": list(channels),
            "recipients": len(recipients),
        },
    )
    return message, len(recipients)
