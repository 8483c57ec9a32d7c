from datetime import datetime, timezone

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def icontains(column, text: str):
    """Case-insensitive literal substring match; ``%`` and ``_`` match themselves."""
    return func.lower(column).contains(text.lower(), autoescape=True)


class Base(DeclarativeBase):
    """Declarative base shared by every table."""


class TimestampMixin:
    """Adds created_at / updated_at columns populated on the Python side."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
