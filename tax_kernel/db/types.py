"""
Module: tax_kernel.db.types
Responsibility: Annotated column type aliases and load-side normalization
    helpers shared by every ORM model.
Architecture position: Kernel > DB.  MUST NOT import from domain/ or outer
    layers.

Invariants enforced:
    - No floats for money or rates: both are Numeric(38, 9).  Backends that
      store Numeric as REAL (SQLite) round-trip exactly at that scale.
    - Datetimes handed to the domain are always timezone-aware UTC.  Backends
      without native timezone support (SQLite) return naive values, which are
      interpreted as UTC by ``as_utc``.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated

from sqlalchemy import Numeric, String


# Monetary amount: 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# ISO 3166 country / subdivision codes and other short identifiers
ShortCode = Annotated[str, String(50)]

# Human-readable names
Name = Annotated[str, String(255)]

# Long text for reasons and descriptions
LongText = Annotated[str, String(4000)]


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to a naive datetime; convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def as_decimal(value: Decimal | int | str | None) -> Decimal | None:
    """Normalize a loaded numeric column to Decimal (drivers may return int/str)."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))
