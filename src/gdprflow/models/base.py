"""Base SQLAlchemy declarative base for all models"""

from datetime import datetime, timezone

from sqlalchemy.orm import declarative_base
from sqlalchemy import TypeDecorator, JSON
from sqlalchemy.dialects.postgresql import JSONB


class PortableJSONB(TypeDecorator):
    """JSON type that works with both PostgreSQL (JSONB) and SQLite (JSON).

    Uses JSONB on PostgreSQL for efficient indexing and querying,
    falls back to JSON on SQLite for testing compatibility.
    """
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(JSONB())
        else:
            return dialect.type_descriptor(JSON())


def utcnow() -> datetime:
    """Current UTC time as a naive datetime.

    All timestamp columns store naive UTC so comparisons behave the same on
    PostgreSQL and SQLite.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def enum_check(column: str, enum_cls) -> str:
    """SQL CHECK expression restricting a text column to an enum's values."""
    values = ", ".join(f"'{member.value}'" for member in enum_cls)
    return f"{column} IN ({values})"


Base = declarative_base()
