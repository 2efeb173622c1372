"""Read-only selectors returning DTOs."""

from stock_kernel.selectors.approval_selector import ApprovalSelector
from stock_kernel.selectors.base import BaseSelector
from stock_kernel.selectors.batch_selector import BatchSelector
from stock_kernel.selectors.stock_ledger_selector import (
    AuditSummaryRow,
    BatchReconciliation,
    BatchValuation,
    MovementPage,
    ReconciliationReport,
    StockLedgerSelector,
    StockValuation,
)

__all__ = [
    "ApprovalSelector",
    "AuditSummaryRow",
    "BaseSelector",
    "BatchReconciliation",
    "BatchSelector",
    "BatchValuation",
    "MovementPage",
    "ReconciliationReport",
    "StockLedgerSelector",
    "StockValuation",
]
