"""Declarative base and shared column types."""

from datetime import datetime

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from learngate.utils import ensure_utc


class UTCDateTime(TypeDecorator):
    """Timezone-aware DateTime that always reads back as UTC.

    SQLite drops tzinfo on storage, PostgreSQL keeps it; both come back aware.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        return ensure_utc(value)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        return ensure_utc(value)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass
