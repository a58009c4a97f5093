"""
Stock Kernel - warehouse movement ledger

An append-only stock ledger with:
- Immutable movement facts (entry, exit, return)
- Atomic, lock-protected stock projection per material
- Replay-based reconciliation of the projection
- Price-lot valuation of current stock
"""

__version__ = "0.1.0"
