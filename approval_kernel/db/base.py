"""
Module: approval_kernel.db.base
Responsibility: Declarative base class and column types shared by all ORM
    models.
Architecture position: Kernel > DB.  Lowest-level import target for
    ``models/``.  MUST NOT import from models/, services/ or domain/.

Invariants enforced:
    - Timestamps round-trip as timezone-aware UTC datetimes on every backend
      (SQLite drops tzinfo on its own; ``UTCDateTime`` restores it).
"""

from datetime import datetime, timezone
from typing import ClassVar

from sqlalchemy import DateTime, Integer
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime column.

    Contract:
        Values are normalized to UTC on bind and come back timezone-aware
        on load, whatever the dialect does with offsets.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Models declare their own primary keys: workflow ids are engine-issued
    strings, not database surrogates.
    """

    type_annotation_map: ClassVar[dict] = {
        datetime: UTCDateTime(),
        int: Integer,
    }
