"""
Module: backoffice_kernel.db.base
Responsibility: Declarative base for all SQLAlchemy ORM models.  Provides the
    integer primary key convention and the type annotation map for consistent
    column types.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST NOT
    import from store/, cache/, services/, domain/, or outer layers.

Invariants enforced:
    - Integer primary keys: entities are addressed by (type, integer id), so
      every table gets an auto-incrementing integer key.  BigInteger on
      PostgreSQL, INTEGER on SQLite (the only type SQLite auto-increments).
    - Decimal precision: Python Decimal maps to Numeric(38, 9).  NEVER use
      float for monetary amounts or hours.
    - Timestamps are timezone-aware.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import BigInteger, DateTime, Integer, Numeric
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# BigInteger that still auto-increments on SQLite
IdType = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Contract:
        Every ORM model in the system inherits from Base.  Base provides an
        integer primary key and a type_annotation_map that enforces
        consistent column types across the entire schema.

    Guarantees:
        - id is an auto-incrementing integer.
        - Decimal maps to Numeric(38, 9).
        - datetime maps to DateTime(timezone=True).
        - int maps to BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        int: BigInteger,
    }

    id: Mapped[int] = mapped_column(
        IdType,
        primary_key=True,
        autoincrement=True,
    )
