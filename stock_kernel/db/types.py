"""
Module: stock_kernel.db.types
Responsibility: Column types and precision helpers shared by every model and
    service.  Quantities, rates and values are Decimal end to end.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/ and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats.  Numeric columns use PortableDecimal, which is
      Numeric(38, 9) on PostgreSQL and exact decimal text on SQLite
      (SQLite's NUMERIC affinity would otherwise round through a double).
    - round_money() is the only rounding function for approval amounts.
      Quantities are kept at STORAGE_DECIMAL_PLACES.

Failure modes:
    - decimal.InvalidOperation from to_decimal() on non-numeric input.
"""

from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

from sqlalchemy import Enum as SAEnum
from sqlalchemy import Numeric, String
from sqlalchemy.types import TypeDecorator

STORAGE_DECIMAL_PLACES = 9
MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

_STORAGE_QUANTUM = Decimal(1).scaleb(-STORAGE_DECIMAL_PLACES)


class PortableDecimal(TypeDecorator):
    """
    Exact decimal column for PostgreSQL and SQLite.

    Contract:
        Accepts Decimal/int/str, always returns Decimal.  Values are
        quantized to STORAGE_DECIMAL_PLACES on the way in so both
        backends store identical numbers.
    """

    impl = Numeric(38, STORAGE_DECIMAL_PLACES)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(64))
        return dialect.type_descriptor(Numeric(38, STORAGE_DECIMAL_PLACES, asdecimal=True))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        quantized = to_storage(to_decimal(value))
        if dialect.name == "sqlite":
            return str(quantized)
        return quantized

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(str(value))


def enum_type(enum_cls: type[Enum], length: int = 20) -> SAEnum:
    """Non-native enum column that stores member values and loads members."""
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


def to_decimal(value: Any) -> Decimal:
    """Convert int/str/Decimal to Decimal.  Floats are refused."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise TypeError("float values are not accepted; pass Decimal or str")
    return Decimal(str(value))


def to_storage(value: Decimal) -> Decimal:
    """Quantize a quantity or value to the storage precision."""
    return value.quantize(_STORAGE_QUANTUM, rounding=DEFAULT_ROUNDING)


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary amount to ``decimal_places`` (half-up by default).

    The only sanctioned rounding for base/gst/total amounts.
    """
    return value.quantize(Decimal(1).scaleb(-decimal_places), rounding=rounding)
