import atexit
import logging

import httpx
from flask import Flask
from redis import Redis
from sqlalchemy.orm import Session, sessionmaker

from shared.config import KafkaConfig, PostgresConfig, RedisConfig
from shared.db.base import create_db_engine, create_session_factory
from shared.enums import Channel

from dispatch_service.config import (
    AuthConfig,
    DispatchConfig,
    FirebaseConfig,
    TwilioConfig,
)
from dispatch_service.dispatcher import Dispatcher
from dispatch_service.lock import DispatchLock
from dispatch_service.log import setup_logging
from dispatch_service.publisher import KafkaStatusPublisher
from dispatch_service.routes import bp
from dispatch_service.transports import create_default_registry
from dispatch_service.verification import VerificationService

logger = logging.getLogger(__name__)


def create_app(
    session_factory: sessionmaker[Session],
    dispatcher: Dispatcher,
    verification: VerificationService,
    auth_config: AuthConfig,
) -> Flask:
    """Flask application factory.

    Args:
        session_factory: Session factory for request-scoped reads/writes.
        dispatcher: Dispatch orchestrator (real or mock for tests).
        verification: Phone verification service.
        auth_config: JWT settings used to authenticate callers.
    """
    app = Flask(__name__)
    app.extensions["session_factory"] = session_factory
    app.extensions["dispatcher"] = dispatcher
    app.extensions["verification"] = verification
    app.extensions["auth_config"] = auth_config

    app.register_blueprint(bp)

    logger.info("Dispatch API initialized")
    return app


def create_app_from_env() -> Flask:
    """Wire every collaborator from environment configuration."""
    dispatch_config = DispatchConfig()
    setup_logging(dispatch_config.log_level)

    engine = create_db_engine(PostgresConfig().dsn, pool_pre_ping=True)
    session_factory = create_session_factory(engine)

    http_client = httpx.Client(timeout=dispatch_config.provider_timeout_seconds)
    registry = create_default_registry(TwilioConfig(), FirebaseConfig(), http_client)

    redis_config = RedisConfig()
    redis_client = Redis(
        host=redis_config.host,
        port=redis_config.port,
        db=redis_config.db,
    )
    dispatch_lock = DispatchLock(redis_client, dispatch_config.lock_timeout_seconds)

    status_publisher = KafkaStatusPublisher(KafkaConfig())

    dispatcher = Dispatcher(
        session_factory,
        registry,
        status_publisher,
        dispatch_lock,
        max_workers=dispatch_config.max_workers,
    )
    verification = VerificationService(session_factory, registry.get(Channel.SMS))

    def _shutdown() -> None:
        status_publisher.close()
        http_client.close()
        engine.dispose()

    atexit.register(_shutdown)

    return create_app(session_factory, dispatcher, verification, AuthConfig())
