"""Kernel services.  Services flush; StockOrchestrator commits."""

from stock_kernel.services.approval_service import MaterialApprovalService
from stock_kernel.services.item_service import ItemService
from stock_kernel.services.movement_service import MaterialMovementService
from stock_kernel.services.reversal_service import ReversalScope, ReversalService
from stock_kernel.services.stock_ledger_service import StockLedgerService
from stock_kernel.services.stock_orchestrator import StockOrchestrator
from stock_kernel.services.uom_resolver import UomConversionResolver

__all__ = [
    "ItemService",
    "MaterialApprovalService",
    "MaterialMovementService",
    "ReversalScope",
    "ReversalService",
    "StockLedgerService",
    "StockOrchestrator",
    "UomConversionResolver",
]
