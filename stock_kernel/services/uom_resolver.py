"""
UomConversionResolver -- loads an item's conversions and resolves a unit.

Thin shell around ``stock_kernel.domain.uom.resolve_conversion``: loads
the Item (raising ItemNotFoundError) and hands its conversion records to
the pure resolver.
"""

from __future__ import annotations

from uuid import UUID

from stock_kernel.domain.uom import ConversionResult, resolve_conversion
from stock_kernel.exceptions import ConversionNotFoundError, ItemNotFoundError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.item import Item
from stock_kernel.services.base import BaseService

logger = get_logger("services.uom")


class UomConversionResolver(BaseService[Item]):
    """Resolves units against an item's stored conversions."""

    def get_item(self, item_id: UUID) -> Item:
        item = self.session.get(Item, item_id)
        if item is None:
            raise ItemNotFoundError(str(item_id))
        return item

    def resolve(self, item_id: UUID, from_unit: str) -> ConversionResult:
        """
        Resolve ``from_unit`` to the item's base unit.

        Raises:
            ItemNotFoundError: unknown item.
            ConversionNotFoundError: no direct or inverse record.
        """
        return self.resolve_for(self.get_item(item_id), from_unit)

    def resolve_for(self, item: Item, from_unit: str) -> ConversionResult:
        try:
            return resolve_conversion(
                item.id, from_unit, item.base_uom, item.conversion_records()
            )
        except ConversionNotFoundError:
            logger.warning(
                "conversion_not_found",
                extra={
                    "item_id": str(item.id),
                    "from_unit": from_unit,
                    "base_unit": item.base_uom,
                },
            )
            raise
