"""Data access repositories with constructor-injected sessions."""

import datetime
from collections import defaultdict
from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import and_, delete, exists, func, select
from sqlalchemy.orm import Session

from shared.db.models import (
    AuthUser,
    DeliveryLog,
    Message,
    MessageRecipient,
    Profile,
    PushToken,
)
from shared.enums import TERMINAL_STATUSES, DeliveryStatus


class AuthUserRepository:
    """Auth records and the verification challenge stored on them."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get_by_id(self, user_id: UUID) -> AuthUser | None:
        return self._session.get(AuthUser, user_id)

    def set_challenge(
        self,
        user: AuthUser,
        code: str,
        expires_at: datetime.datetime,
        phone: str,
    ) -> AuthUser:
        """Store a challenge, replacing whatever was there before."""
        user.verification_code = code
        user.verification_expires_at = expires_at
        user.verification_phone = phone
        self._session.flush()
        return user

    def clear_challenge(self, user: AuthUser) -> AuthUser:
        user.verification_code = None
        user.verification_expires_at = None
        user.verification_phone = None
        self._session.flush()
        return user


class ProfileRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_by_id(self, user_id: UUID) -> Profile | None:
        return self._session.get(Profile, user_id)

    def list_ids(self, role: str | None = None) -> list[UUID]:
        """All profile ids, optionally restricted to one role."""
        stmt = select(Profile.id).order_by(Profile.created_at)
        if role is not None:
            stmt = stmt.where(Profile.role == role)
        return list(self._session.scalars(stmt).all())

    def existing_ids(self, user_ids: Iterable[UUID]) -> list[UUID]:
        """Subset of *user_ids* that have a profile, in input order."""
        wanted = list(dict.fromkeys(user_ids))
        if not wanted:
            return []
        stmt = select(Profile.id).where(Profile.id.in_(wanted))
        found = set(self._session.scalars(stmt).all())
        return [uid for uid in wanted if uid in found]

    def mark_phone_verified(self, profile: Profile, phone: str) -> Profile:
        profile.phone_e164 = phone
        profile.phone_verified = True
        self._session.flush()
        return profile


class MessageRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create(self, message: Message) -> Message:
        """Add a new message and flush to populate defaults."""
        self._session.add(message)
        self._session.flush()
        return message

    def get_by_id(self, message_id: UUID) -> Message | None:
        return self._session.get(Message, message_id)


class RecipientRepository:
    """Data access for message_recipients."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def create_many(
        self,
        message_id: UUID,
        user_ids: Iterable[UUID],
        channels: list[str],
    ) -> list[MessageRecipient]:
        """Fan a message out to users, each with its own copy of *channels*."""
        recipients = [
            MessageRecipient(
                message_id=message_id,
                user_id=user_id,
                channels_attempted=list(channels),
                status=DeliveryStatus.PENDING,
            )
            for user_id in user_ids
        ]
        self._session.add_all(recipients)
        self._session.flush()
        return recipients

    def get_by_id(self, recipient_id: UUID) -> MessageRecipient | None:
        return self._session.get(MessageRecipient, recipient_id)

    def list_for_message(self, message_id: UUID) -> list[MessageRecipient]:
        stmt = (
            select(MessageRecipient)
            .where(MessageRecipient.message_id == message_id)
            .order_by(MessageRecipient.created_at, MessageRecipient.id)
        )
        return list(self._session.scalars(stmt).all())

    def list_dispatch_candidates(
        self, message_id: UUID, channel: str
    ) -> list[MessageRecipient]:
        """Pending recipients of *message_id* still owed a *channel* attempt.

        A recipient qualifies when its aggregate status is pending, the
        channel is among the channels it was fanned out to, and no terminal
        log entry exists yet for that (recipient, channel) pair.
        """
        already_resolved = exists().where(
            and_(
                DeliveryLog.recipient_id == MessageRecipient.id,
                DeliveryLog.channel == channel,
                DeliveryLog.status.in_(TERMINAL_STATUSES),
            )
        )
        stmt = (
            select(MessageRecipient)
            .where(
                MessageRecipient.message_id == message_id,
                MessageRecipient.status == DeliveryStatus.PENDING,
                ~already_resolved,
            )
            .order_by(MessageRecipient.created_at, MessageRecipient.id)
        )
        # channels_attempted is JSON; containment is checked in Python.
        return [
            r for r in self._session.scalars(stmt).all()
            if channel in (r.channels_attempted or [])
        ]

    def update_status(
        self, recipient: MessageRecipient, status: str
    ) -> MessageRecipient:
        recipient.status = status
        self._session.flush()
        return recipient

    def mark_read(
        self, recipient: MessageRecipient, read_at: datetime.datetime
    ) -> MessageRecipient:
        """Record the first read. Later calls keep the original timestamp."""
        if recipient.read_at is None:
            recipient.read_at = read_at
            self._session.flush()
        return recipient


class DeliveryLogRepository:
    """Append-only access to delivery_logs.

    No update or delete: the log is the audit trail
    behind the mutable recipient status.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def append(
        self,
        message_id: UUID,
        recipient_id: UUID,
        channel: str,
        status: str,
        *,
        provider_message_id: str | None = None,
        error_message: str | None = None,
    ) -> DeliveryLog:
        entry = DeliveryLog(
            message_id=message_id,
            recipient_id=recipient_id,
            channel=channel,
            status=status,
            provider_message_id=provider_message_id,
            error_message=error_message,
        )
        self._session.add(entry)
        self._session.flush()
        return entry

    def list_for_recipient(self, recipient_id: UUID) -> list[DeliveryLog]:
        stmt = (
            select(DeliveryLog)
            .where(DeliveryLog.recipient_id == recipient_id)
            .order_by(DeliveryLog.id)
        )
        return list(self._session.scalars(stmt).all())

    def list_for_message(self, message_id: UUID) -> list[DeliveryLog]:
        stmt = (
            select(DeliveryLog)
            .where(DeliveryLog.message_id == message_id)
            .order_by(DeliveryLog.id)
        )
        return list(self._session.scalars(stmt).all())

    def terminal_channels(self, recipient_id: UUID) -> dict[str, str]:
        """Latest terminal status per channel for one recipient."""
        stmt = (
            select(DeliveryLog.channel, DeliveryLog.status)
            .where(
                DeliveryLog.recipient_id == recipient_id,
                DeliveryLog.status.in_(TERMINAL_STATUSES),
            )
            .order_by(DeliveryLog.id)
        )
        return {channel: status for channel, status in self._session.execute(stmt)}

    def has_terminal(self, recipient_id: UUID, channel: str) -> bool:
        stmt = select(
            exists().where(
                DeliveryLog.recipient_id == recipient_id,
                DeliveryLog.channel == channel,
                DeliveryLog.status.in_(TERMINAL_STATUSES),
            )
        )
        return bool(self._session.scalar(stmt))

    def summary_for_message(self, message_id: UUID) -> dict[str, dict[str, int]]:
        """Entry counts per channel and status, e.g. ``{"sms": {"delivered": 3}}``."""
        stmt = (
            select(DeliveryLog.channel, DeliveryLog.status, func.count())
            .where(DeliveryLog.message_id == message_id)
            .group_by(DeliveryLog.channel, DeliveryLog.status)
        )
        summary: defaultdict[str, dict[str, int]] = defaultdict(dict)
        for channel, status, count in self._session.execute(stmt):
            summary[channel][status] = count
        return dict(summary)


class PushTokenRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def list_for_user(self, user_id: UUID) -> list[PushToken]:
        stmt = (
            select(PushToken)
            .where(PushToken.user_id == user_id)
            .order_by(PushToken.created_at, PushToken.id)
        )
        return list(self._session.scalars(stmt).all())

    def add_if_absent(self, user_id: UUID, token: str) -> tuple[PushToken, bool]:
        """Insert a (user, token) pair unless it already exists.

        Returns the row and whether it was created.
        """
        stmt = select(PushToken).where(
            PushToken.user_id == user_id, PushToken.token == token
        )
        existing = self._session.scalars(stmt).first()
        if existing is not None:
            return existing, False

        push_token = PushToken(user_id=user_id, token=token)
        self._session.add(push_token)
        self._session.flush()
        return push_token, True

    def delete_token(self, token: str) -> int:
        """Delete every row holding *token*. Returns the number removed."""
        result = self._session.execute(
            delete(PushToken).where(PushToken.token == token)
        )
        self._session.flush()
        return result.rowcount or 0
