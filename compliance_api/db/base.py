"""
db/base.py
----------
Declarative base and shared mixins.

TimestampMixin:  Adds created_at / updated_at columns to any model.
new_id:          String UUID primary keys. UUIDs are preferable over integer
                 sequences in multi-tenant systems because they prevent
                 tenant enumeration attacks.
Money / Grams:   Fixed-point numerics. Quota comparisons and report sums are
                 done in Decimal so 85.01 g is never rounded to 85 g.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Numeric, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class TimestampMixin:
    """Adds server-side created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


def new_id() -> str:
    return str(uuid.uuid4())


Money = Numeric(12, 2, asdecimal=True)
Grams = Numeric(10, 3, asdecimal=True)
