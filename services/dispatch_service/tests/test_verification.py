"""Tests for phone verification challenges."""

import datetime
import uuid
from collections.abc import Callable
from unittest.mock import MagicMock

import pytest
from sqlalchemy.orm import Session

from shared.db.models import AuthUser, Profile

from dispatch_service.errors import (
    ProviderRejected,
    Unauthorized,
    VerificationFailed,
)
from dispatch_service.transports import DeliveryResult, DeliveryTransport
from dispatch_service.transports.sms import SimulatedSmsTransport
from dispatch_service.verification import (
    CODE_TTL,
    VerificationService,
    generate_code,
)

PHONE = "+15551234567"
NOW = datetime.datetime(2026, 3, 2, 9, 0, tzinfo=datetime.UTC)


class _Clock:
    def __init__(self, now: datetime.datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now


@pytest.fixture()
def clock() -> _Clock:
    return _Clock()


@pytest.fixture()
def service(session_factory: MagicMock, clock: _Clock) -> VerificationService:
    return VerificationService(
        session_factory,
        SimulatedSmsTransport(),
        clock=clock,
        code_factory=lambda: "042137",
    )


@pytest.fixture()
def parent(make_profile: Callable[..., Profile]) -> Profile:
    return make_profile()


class TestGenerateCode:
    def test_six_digits(self) -> None:
        for _ in range(50):
            code = generate_code()
            assert len(code) == 6
            assert code.isdigit()


class TestIssueCode:
    def test_dev_mode_returns_code_and_stores_challenge(
        self,
        db_session: Session,
        service: VerificationService,
        parent: Profile,
    ) -> None:
        result = service.issue_code(parent.id, PHONE)

        assert result.dev_mode is True
        assert result.code == "042137"
        user = db_session.get(AuthUser, parent.id)
        assert user.verification_code == "042137"
        assert user.verification_phone == PHONE
        assert user.verification_expires_at == NOW + CODE_TTL
        assert CODE_TTL == datetime.timedelta(minutes=10)

    def test_live_send_hides_code(
        self, session_factory: MagicMock, clock: _Clock, parent: Profile
    ) -> None:
        sms = MagicMock(spec=DeliveryTransport)
        sms.simulated = False
        sms.send.return_value = DeliveryResult(
            success=True, details="SMS accepted", provider_message_id="SM1"
        )
        service = VerificationService(
            session_factory, sms, clock=clock, code_factory=lambda: "123456"
        )

        result = service.issue_code(parent.id, PHONE)

        assert result.dev_mode is False
        assert result.code is None
        destination, content = sms.send.call_args.args
        assert destination == PHONE
        assert content.text == "Your verification code is: 123456"

    def test_live_send_failure_raises(
        self, session_factory: MagicMock, clock: _Clock, parent: Profile
    ) -> None:
        sms = MagicMock(spec=DeliveryTransport)
        sms.simulated = False
        sms.send.return_value = DeliveryResult(
            success=False, details='{"code": 21211}'
        )
        service = VerificationService(session_factory, sms, clock=clock)

        with pytest.raises(ProviderRejected) as exc_info:
            service.issue_code(parent.id, PHONE)
        assert exc_info.value.status_code == 502

    def test_reissue_replaces_challenge(
        self,
        db_session: Session,
        session_factory: MagicMock,
        clock: _Clock,
        parent: Profile,
    ) -> None:
        codes = iter(["111111", "222222"])
        service = VerificationService(
            session_factory,
            SimulatedSmsTransport(),
            clock=clock,
            code_factory=lambda: next(codes),
        )

        service.issue_code(parent.id, PHONE)
        service.issue_code(parent.id, "+15557654321")

        user = db_session.get(AuthUser, parent.id)
        assert user.verification_code == "222222"
        assert user.verification_phone == "+15557654321"

    def test_unknown_user(self, service: VerificationService) -> None:
        with pytest.raises(Unauthorized):
            service.issue_code(uuid.uuid4(), PHONE)


class TestValidateCode:
    def test_correct_code_verifies_phone(
        self,
        db_session: Session,
        service: VerificationService,
        parent: Profile,
        clock: _Clock,
    ) -> None:
        service.issue_code(parent.id, PHONE)
        clock.now = NOW + CODE_TTL

        phone = service.validate_code(parent.id, "042137")

        assert phone == PHONE
        assert parent.phone_verified is True
        assert parent.phone_e164 == PHONE
        user = db_session.get(AuthUser, parent.id)
        assert user.verification_code is None
        assert user.verification_expires_at is None

    def test_no_challenge(
        self, service: VerificationService, parent: Profile
    ) -> None:
        with pytest.raises(VerificationFailed) as exc_info:
            service.validate_code(parent.id, "042137")
        assert exc_info.value.reason == VerificationFailed.NOT_FOUND

    def test_expired(
        self,
        db_session: Session,
        service: VerificationService,
        parent: Profile,
        clock: _Clock,
    ) -> None:
        service.issue_code(parent.id, PHONE)
        clock.now = NOW + CODE_TTL + datetime.timedelta(seconds=1)

        with pytest.raises(VerificationFailed) as exc_info:
            service.validate_code(parent.id, "042137")

        assert exc_info.value.reason == VerificationFailed.EXPIRED
        assert parent.phone_verified is False

    def test_expiry_checked_before_code(
        self, service: VerificationService, parent: Profile, clock: _Clock
    ) -> None:
        service.issue_code(parent.id, PHONE)
        clock.now = NOW + datetime.timedelta(hours=1)

        with pytest.raises(VerificationFailed) as exc_info:
            service.validate_code(parent.id, "999999")
        assert exc_info.value.reason == VerificationFailed.EXPIRED

    def test_mismatch_keeps_challenge(
        self,
        db_session: Session,
        service: VerificationService,
        parent: Profile,
    ) -> None:
        service.issue_code(parent.id, PHONE)

        with pytest.raises(VerificationFailed) as exc_info:
            service.validate_code(parent.id, "000000")
        assert exc_info.value.reason == VerificationFailed.MISMATCH

        assert db_session.get(AuthUser, parent.id).verification_code == "042137"
        assert service.validate_code(parent.id, "042137") == PHONE

    def test_leading_zeros_matter(
        self, service: VerificationService, parent: Profile
    ) -> None:
        service.issue_code(parent.id, PHONE)

        with pytest.raises(VerificationFailed):
            service.validate_code(parent.id, "42137")
