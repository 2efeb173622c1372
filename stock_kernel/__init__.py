"""
Stock Kernel

Batch-level inventory ledger for stock moving between a central store,
branches and field technicians:
- Append-only stock ledger with audit metadata
- Atomic batch balance + ledger entry writes
- Exact compensating reversal of issues and transfers
- Approve / reject / partial-accept workflow for material issues
- Unit-of-measure conversion with explicit direction
"""

__version__ = "0.1.0"
