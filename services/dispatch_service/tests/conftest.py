"""Test fixtures for dispatch_service tests."""

import uuid
from collections.abc import Callable, Generator
from unittest.mock import MagicMock

import pytest
from flask import Flask
from flask.testing import FlaskClient
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from shared.db.base import Base
from shared.db.models import AuthUser, Message, Profile, PushToken
from shared.db.repositories import MessageRepository, RecipientRepository
from shared.enums import AudienceType, Channel, Role

from dispatch_service.app import create_app
from dispatch_service.config import AuthConfig
from dispatch_service.dispatcher import Dispatcher
from dispatch_service.lock import DispatchClaim, DispatchLock
from dispatch_service.publisher import KafkaStatusPublisher
from dispatch_service.transports import TransportRegistry
from dispatch_service.transports.push import SimulatedPushTransport
from dispatch_service.transports.sms import SimulatedSmsTransport
from dispatch_service.verification import VerificationService


@pytest.fixture(scope="session")
def db_engine() -> Engine:
    """Create a single in-memory SQLite engine for the test session."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture()
def db_session(db_engine: Engine) -> Generator[Session, None, None]:
    """Transactional session that rolls back after each test."""
    connection = db_engine.connect()
    transaction = connection.begin()
    session = Session(bind=connection)

    yield session

    session.close()
    if transaction.is_active:
        transaction.rollback()
    connection.close()


@pytest.fixture()
def session_factory(db_session: Session) -> MagicMock:
    """Session factory that always returns the test session.

    Wraps db_session so that ``with session_factory() as session:``
    returns our transactional test session.
    """
    factory = MagicMock(spec=sessionmaker)
    ctx = MagicMock()
    ctx.__enter__ = MagicMock(return_value=db_session)
    ctx.__exit__ = MagicMock(return_value=False)
    factory.return_value = ctx
    return factory


@pytest.fixture()
def mock_status_publisher() -> MagicMock:
    return MagicMock(spec=KafkaStatusPublisher)


@pytest.fixture()
def mock_dispatch_lock() -> MagicMock:
    """Lock that is always free."""
    lock = MagicMock(spec=DispatchLock)
    lock.hold.return_value.__enter__ = MagicMock(
        return_value=MagicMock(spec=DispatchClaim)
    )
    lock.hold.return_value.__exit__ = MagicMock(return_value=False)
    return lock


@pytest.fixture()
def simulated_registry() -> TransportRegistry:
    registry = TransportRegistry()
    registry.register(Channel.SMS, SimulatedSmsTransport())
    registry.register(Channel.PUSH, SimulatedPushTransport())
    return registry


@pytest.fixture()
def dispatcher(
    session_factory: MagicMock,
    simulated_registry: TransportRegistry,
    mock_status_publisher: MagicMock,
    mock_dispatch_lock: MagicMock,
) -> Dispatcher:
    return Dispatcher(
        session_factory,
        simulated_registry,
        mock_status_publisher,
        mock_dispatch_lock,
    )


@pytest.fixture()
def auth_config() -> AuthConfig:
    return AuthConfig(jwt_secret="test-secret")


@pytest.fixture()
def make_profile(db_session: Session) -> Callable[..., Profile]:
    """Factory for an auth user plus profile."""

    def _make(
        role: str = Role.PARENT,
        phone: str | None = None,
        verified: bool = False,
    ) -> Profile:
        user = AuthUser(email=f"{uuid.uuid4().hex}@school.test")
        db_session.add(user)
        db_session.flush()
        profile = Profile(
            id=user.id,
            email=user.email,
            role=role,
            phone_e164=phone,
            phone_verified=verified,
        )
        db_session.add(profile)
        db_session.flush()
        return profile

    return _make


@pytest.fixture()
def add_push_token(db_session: Session) -> Callable[[uuid.UUID, str], PushToken]:
    def _add(user_id: uuid.UUID, token: str) -> PushToken:
        row = PushToken(user_id=user_id, token=token)
        db_session.add(row)
        db_session.flush()
        return row

    return _add


@pytest.fixture()
def teacher(make_profile: Callable[..., Profile]) -> Profile:
    return make_profile(role=Role.TEACHER)


@pytest.fixture()
def make_message(
    db_session: Session, teacher: Profile
) -> Callable[..., Message]:
    """Factory for a message fanned out to the given users."""

    def _make(
        user_ids: list[uuid.UUID],
        channels: list[str] | None = None,
        link: str | None = None,
    ) -> Message:
        channels = channels or [Channel.SMS, Channel.PUSH]
        message = MessageRepository(db_session).create(
            Message(
                sender_id=teacher.id,
                title="Snow day",
                body="School is closed today.",
                link=link,
                audience_type=AudienceType.INDIVIDUAL,
                audience_filter={"user_ids": [str(u) for u in user_ids]},
                channels=list(channels),
            )
        )
        RecipientRepository(db_session).create_many(message.id, user_ids, channels)
        return message

    return _make


@pytest.fixture()
def mock_dispatcher() -> MagicMock:
    return MagicMock(spec=Dispatcher)


@pytest.fixture()
def mock_verification() -> MagicMock:
    return MagicMock(spec=VerificationService)


@pytest.fixture()
def app(
    session_factory: MagicMock,
    mock_dispatcher: MagicMock,
    mock_verification: MagicMock,
    auth_config: AuthConfig,
) -> Flask:
    app = create_app(
        session_factory, mock_dispatcher, mock_verification, auth_config
    )
    app.config["TESTING"] = True
    return app


@pytest.fixture()
def client(app: Flask) -> FlaskClient:
    return app.test_client()
