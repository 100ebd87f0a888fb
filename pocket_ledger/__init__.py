"""
Pocket Ledger - Source Package

The client-side ledger of a personal finance application: per-user
mirrors of accounts, transactions, budget categories, give/take records
and categories, kept in sync with a remote table store.

DESIGN PRINCIPLES:
1. Remote first, memory second
2. Errors are values, never surprises
3. Cached totals change only through explicit, audited updates
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Pocket Ledger Team"
