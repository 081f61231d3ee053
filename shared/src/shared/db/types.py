"""Column types that behave the same on PostgreSQL and SQLite."""

import datetime

import sqlalchemy as sa
from sqlalchemy.types import TypeDecorator


class JSONBCompatible(TypeDecorator):
    """JSON column stored as JSONB on PostgreSQL and plain JSON elsewhere.

    Channel lists and audience filters use it; SQLite backs the tests.
    """

    impl = sa.JSON
    cache_ok = True

    def load_dialect_impl(self, dialect: sa.Dialect) -> sa.types.TypeEngine:
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import JSONB

            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(sa.JSON())


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp that always comes back in UTC.

    SQLite drops tzinfo on read; comparisons against ``datetime.now(UTC)``
    (challenge expiry, log ordering) need aware values on every dialect.
    """

    impl = sa.DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(
        self, value: datetime.datetime | None, dialect: sa.Dialect
    ) -> datetime.datetime | None:
        if value is not None and value.tzinfo is None:
            raise ValueError("naive datetime bound to a UTCDateTime column")
        if value is not None:
            value = value.astimezone(datetime.UTC)
        return value

    def process_result_value(
        self, value: datetime.datetime | None, dialect: sa.Dialect
    ) -> datetime.datetime | None:
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=datetime.UTC)
        return value
