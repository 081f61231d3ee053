"""Database layer: models, repositories, engine/session utilities."""

from shared.db.base import Base, create_db_engine, create_session_factory
from shared.db.models import (
    AuthUser,
    DeliveryLog,
    Message,
    MessageRecipient,
    Profile,
    PushToken,
)
from shared.db.repositories import (
    AuthUserRepository,
    DeliveryLogRepository,
    MessageRepository,
    ProfileRepository,
    PushTokenRepository,
    RecipientRepository,
)

__all__ = [
    "Base",
    "create_db_engine",
    "create_session_factory",
    "AuthUser",
    "DeliveryLog",
    "Message",
    "MessageRecipient",
    "Profile",
    "PushToken",
    "AuthUserRepository",
    "DeliveryLogRepository",
    "MessageRepository",
    "ProfileRepository",
    "PushTokenRepository",
    "RecipientRepository",
]
