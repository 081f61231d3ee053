"""One-time-code phone verification over SMS."""

import datetime
import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from shared.db.repositories import AuthUserRepository, ProfileRepository

from dispatch_service.errors import (
    ProviderRejected,
    ResourceNotFound,
    Unauthorized,
    VerificationFailed,
)
from dispatch_service.log import mask_phone
from dispatch_service.renderer import format_verification_text
from dispatch_service.transports import DeliveryTransport, OutboundMessage

logger = logging.getLogger(__name__)

CODE_DIGITS = 6
CODE_TTL = datetime.timedelta(minutes=10)


def generate_code() -> str:
    """Uniform 6-digit numeric code; leading zeros are kept."""
    return f"{secrets.randbelow(10**CODE_DIGITS):0{CODE_DIGITS}d}"


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


@dataclass(frozen=True, slots=True)
class IssueResult:
    dev_mode: bool
    # Only set in dev mode, so testers can proceed without a real SMS.
    code: str | None = None


class VerificationService:
    """Issues and checks phone verification challenges.

    A challenge lives on the user's auth record (code, expiry, phone).
    Issuing replaces any earlier challenge. A wrong code leaves the
    challenge in place until it expires; the right one consumes it.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        sms_transport: DeliveryTransport,
        clock: Callable[[], datetime.datetime] = _utcnow,
        code_factory: Callable[[], str] = generate_code,
    ) -> None:
        self._session_factory = session_factory
        self._sms = sms_transport
        self._clock = clock
        self._code_factory = code_factory

    def issue_code(self, user_id: UUID, phone_number: str) -> IssueResult:
        code = self._code_factory()
        expires_at = self._clock() + CODE_TTL
        log_ctx = {"user_id": str(user_id), "phone": mask_phone(phone_number)}

        with self._session_factory() as session:
            users = AuthUserRepository(session)
            user = users.get_by_id(user_id)
            if user is None:
                raise Unauthorized("Unauthorized")
            users.set_challenge(user, code, expires_at, phone_number)
            session.commit()

        result = self._sms.send(
            phone_number, OutboundMessage.plain(format_verification_text(code))
        )

        if self._sms.simulated:
            logger.info("Verification code issued (dev mode)", extra=log_ctx)
            return IssueResult(dev_mode=True, code=code)

        if not result.success:
            logger.error(
                "Verification SMS rejected",
                extra={**log_ctx, "reason": result.details},
            )
            raise ProviderRejected(
                "Failed to send verification code", providerError=result.details
            )

        logger.info("Verification code sent", extra=log_ctx)
        return IssueResult(dev_mode=False)

    def validate_code(self, user_id: UUID, code: str) -> str:
        """Check *code* against the stored challenge and verify the phone.

        Returns the verified phone number. Raises VerificationFailed with
        reason ``not_found``, ``expired`` or ``mismatch``.
        """
        with self._session_factory() as session:
            users = AuthUserRepository(session)
            user = users.get_by_id(user_id)
            if user is None:
                raise Unauthorized("Unauthorized")

            if not user.verification_code or user.verification_expires_at is None:
                raise VerificationFailed(
                    "No verification code found. Please request a new code.",
                    VerificationFailed.NOT_FOUND,
                )

            if self._clock() > user.verification_expires_at:
                raise VerificationFailed(
                    "Verification code expired. Please request a new code.",
                    VerificationFailed.EXPIRED,
                )

            if code != user.verification_code:
                logger.info("Verification code mismatch", extra={"user_id": str(user_id)})
                raise VerificationFailed(
                    "Invalid verification code", VerificationFailed.MISMATCH
                )

            profile = ProfileRepository(session).get_by_id(user_id)
            if profile is None:
                raise ResourceNotFound("Profile not found", userId=str(user_id))

            phone = user.verification_phone or ""
            ProfileRepository(session).mark_phone_verified(profile, phone)
            users.clear_challenge(user)
            session.commit()

        logger.info(
            "Phone verified",
            extra={"user_id": str(user_id), "phone": mask_phone(phone)},
        )
        return phone
