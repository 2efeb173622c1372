"""
Unit-of-measure conversion (``stock_kernel.domain.uom``).

Responsibility
--------------
Resolve how a quantity in some unit converts to an item's base unit, given
the item's stored conversion records.  Pure: the caller loads the records.

Resolution order
----------------
1. ``from_unit == base_unit``: identity, factor 1, direction DIRECT.
2. A record ``(from_unit -> base_unit)``: DIRECT, base = qty x factor.
3. A record ``(base_unit -> from_unit)``: INVERSE, base = qty / factor.
4. Otherwise ConversionNotFoundError.  Never an implicit 1:1.

Unit codes are compared after normalize_unit() (trimmed, upper-cased).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Iterable
from uuid import UUID

from stock_kernel.exceptions import ConversionNotFoundError


class ConversionDirection(str, Enum):
    """How a stored factor applies: multiply (DIRECT) or divide (INVERSE)."""

    DIRECT = "DIRECT"
    INVERSE = "INVERSE"


def normalize_unit(unit: str) -> str:
    """Canonical form of a unit code: ``" ml "`` -> ``"ML"``."""
    if unit is None or not str(unit).strip():
        raise ValueError("unit code must be a non-empty string")
    return str(unit).strip().upper()


@dataclass(frozen=True)
class ConversionRecord:
    """One stored factor: ``to_unit`` quantity = ``from_unit`` quantity x factor."""

    from_unit: str
    to_unit: str
    factor: Decimal


@dataclass(frozen=True)
class ConversionResult:
    """Resolved conversion from ``from_unit`` to the item's ``base_unit``."""

    item_id: UUID
    from_unit: str
    base_unit: str
    factor: Decimal
    direction: ConversionDirection

    @property
    def is_identity(self) -> bool:
        return self.from_unit == self.base_unit

    def to_base(self, quantity: Decimal) -> Decimal:
        """Convert a quantity in ``from_unit`` to the base unit."""
        if self.direction is ConversionDirection.DIRECT:
            return quantity * self.factor
        return quantity / self.factor

    def from_base(self, quantity: Decimal) -> Decimal:
        """Convert a base-unit quantity back to ``from_unit``."""
        if self.direction is ConversionDirection.DIRECT:
            return quantity / self.factor
        return quantity * self.factor


def resolve_conversion(
    item_id: UUID,
    from_unit: str,
    base_unit: str,
    conversions: Iterable[ConversionRecord],
) -> ConversionResult:
    """
    Resolve ``from_unit`` against ``base_unit`` for one item.

    Raises:
        ConversionNotFoundError: no direct or inverse record exists.
    """
    source = normalize_unit(from_unit)
    base = normalize_unit(base_unit)

    if source == base:
        return ConversionResult(item_id, source, base, Decimal(1), ConversionDirection.DIRECT)

    records = list(conversions)
    for record in records:
        if normalize_unit(record.from_unit) == source and normalize_unit(record.to_unit) == base:
            return ConversionResult(
                item_id, source, base, record.factor, ConversionDirection.DIRECT
            )

    for record in records:
        if normalize_unit(record.from_unit) == base and normalize_unit(record.to_unit) == source:
            return ConversionResult(
                item_id, source, base, record.factor, ConversionDirection.INVERSE
            )

    raise ConversionNotFoundError(str(item_id), source, base)
