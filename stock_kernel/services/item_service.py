"""
ItemService -- minimal item catalogue: register items and grow their
unit-conversion lists.

Items are immutable after creation apart from new conversion records.
Unit codes are stored normalised (trimmed, upper-cased).
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable
from uuid import UUID

from stock_kernel.db.types import to_decimal
from stock_kernel.domain.uom import ConversionRecord, normalize_unit
from stock_kernel.exceptions import InvalidConversionFactorError, ItemNotFoundError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.item import Item, UomConversion
from stock_kernel.services.base import BaseService

logger = get_logger("services.item")


class ItemService(BaseService[Item]):

    def register_item(
        self,
        *,
        name: str,
        category: str,
        base_uom: str,
        actor_id: UUID,
        conversions: Iterable[ConversionRecord] = (),
    ) -> Item:
        item = Item(
            name=name,
            category=category,
            base_uom=normalize_unit(base_uom),
            created_by_id=actor_id,
        )
        self.session.add(item)
        self.session.flush()
        logger.info(
            "item_registered",
            extra={"item_id": str(item.id), "item_name": name, "base_uom": item.base_uom},
        )
        for record in conversions:
            self.add_conversion(item.id, record.from_unit, record.to_unit, record.factor)
        return item

    def add_conversion(
        self,
        item_id: UUID,
        from_unit: str,
        to_unit: str,
        factor: Decimal,
    ) -> UomConversion:
        """
        Append a conversion record: ``to_unit`` qty = ``from_unit`` qty x factor.

        Raises:
            ItemNotFoundError: unknown item.
            InvalidConversionFactorError: non-positive factor, identical
                units, or the pair (either direction) already exists.
        """
        item = self.session.get(Item, item_id)
        if item is None:
            raise ItemNotFoundError(str(item_id))

        source = normalize_unit(from_unit)
        target = normalize_unit(to_unit)
        factor = to_decimal(factor)

        if factor <= 0:
            raise InvalidConversionFactorError(str(item_id), source, target, "factor must be positive")
        if source == target:
            raise InvalidConversionFactorError(str(item_id), source, target, "units must differ")
        for existing in item.conversions:
            if {existing.from_unit, existing.to_unit} == {source, target}:
                raise InvalidConversionFactorError(
                    str(item_id), source, target, "conversion for this unit pair already exists"
                )

        conversion = UomConversion(
            item_id=item.id, from_unit=source, to_unit=target, factor=factor,
        )
        item.conversions.append(conversion)
        self.session.flush()
        logger.info(
            "conversion_added",
            extra={
                "item_id": str(item.id),
                "from_unit": source,
                "to_unit": target,
                "factor": str(factor),
            },
        )
        return conversion
