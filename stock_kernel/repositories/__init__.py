"""Repositories: the only writers of batch balances and ledger rows."""

from stock_kernel.repositories.batch_repository import BatchRepository
from stock_kernel.repositories.ledger_repository import LedgerRepository

__all__ = ["BatchRepository", "LedgerRepository"]
