"""SQLAlchemy declarative base with common mixins."""
from sqlalchemy import String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from uuid6 import uuid7


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def new_id() -> str:
    """Generate a time-ordered UUIDv7 string id."""
    return str(uuid7())


class UUIDv7Mixin:
    """
    Mixin that adds a UUIDv7 primary key stored as a 36-character string.

    UUIDv7 values sort lexicographically by creation time, so the id doubles
    as an insertion-order tie-breaker when two rows share a timestamp.
    """

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
