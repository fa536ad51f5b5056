"""
Declarative base and the columns every taskboard table shares.
"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Every `Mapped[datetime]` column is timezone-aware, so SQLite test runs
    and PostgreSQL agree on what a timestamp means.
    """

    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }


class TimestampMixin:
    """
    Database-assigned created_at / updated_at.

    Task listings sort on created_at, newest first, after position.
    """

    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        nullable=False,
        doc="When the row was inserted",
    )

    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
        doc="Bumped by every UPDATE, including sibling position shifts",
    )


class UUIDMixin:
    """Client-generated UUID key; ids are never guessable across organizations."""

    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
    )
