"""Column helpers shared by rolemate models."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import DateTime
from sqlalchemy.orm import Mapped, mapped_column
from ulid import ULID


def generate_ulid() -> str:
    """Return a new ULID as its 26 character string form."""

    return str(ULID())


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


class TimestampMixin:
    """Adds ``created_at`` and ``updated_at`` (timezone aware, set in Python)."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )


__all__ = ["TimestampMixin", "generate_ulid", "utc_now"]
