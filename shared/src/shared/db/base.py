"""Declarative base, engine and session factories."""

import datetime

from sqlalchemy import Engine, MetaData, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

# Deterministic constraint names so Alembic autogenerate diffs stay stable.
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def create_db_engine(dsn: str, **kwargs: object) -> Engine:
    """Create a SQLAlchemy engine from a DSN string.

    Pass ``pool_pre_ping=True`` in production so connections dropped by a
    PostgreSQL restart are recycled instead of failing the next request.
    """
    return create_engine(dsn, **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create a sessionmaker bound to the given engine.

    ``expire_on_commit=False`` keeps loaded rows usable after the
    per-recipient commit in the dispatcher and after request teardown.
    """
    return sessionmaker(bind=engine, expire_on_commit=False)
