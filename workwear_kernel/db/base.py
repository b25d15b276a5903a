"""
Declarative base shared by every workwear table.

Rows get a uuid4 surrogate ``id``; business identifiers such as order
ids and PO numbers sit in their own unique columns.  Money columns map
to ``Numeric(38, 9)`` so prices and personal-payment amounts round-trip
as ``Decimal``.  Models import from here and nothing here imports a
model.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

# Actor columns hold the approver's or employee's email.
ACTOR_LENGTH = 255


class UUIDString(TypeDecorator):
    """A ``uuid.UUID`` kept as its 36-character text form (SQLite has no UUID type)."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, uuid.UUID):
            value = uuid.UUID(str(value))
        return str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else uuid.UUID(value)


class Base(DeclarativeBase):

    type_annotation_map: ClassVar[dict] = {
        uuid.UUID: UUIDString(),
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
    }

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)


class TrackedBase(Base):
    """
    Adds who/when columns.

    ``created_at`` and ``updated_at`` come from the database clock, so they
    record when the row was written rather than the business timestamp
    (``order_date``, approval stamps) a service put on it.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now()
    )
    created_by: Mapped[str] = mapped_column(String(ACTOR_LENGTH))
    updated_by: Mapped[str | None] = mapped_column(String(ACTOR_LENGTH))
