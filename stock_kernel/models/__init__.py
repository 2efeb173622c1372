"""ORM models for the stock kernel."""

from stock_kernel.models.approval import MaterialApproval, MaterialApprovalItem
from stock_kernel.models.batch import Batch
from stock_kernel.models.item import Item, UomConversion
from stock_kernel.models.material_issue import MaterialIssue, MaterialIssueItem
from stock_kernel.models.material_transfer import MaterialTransfer, MaterialTransferItem
from stock_kernel.models.stock_ledger import StockLedgerEntry

__all__ = [
    "Batch",
    "Item",
    "MaterialApproval",
    "MaterialApprovalItem",
    "MaterialIssue",
    "MaterialIssueItem",
    "MaterialTransfer",
    "MaterialTransferItem",
    "StockLedgerEntry",
    "UomConversion",
]
