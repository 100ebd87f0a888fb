"""Per-user in-memory mirrors of the remote ledger tables."""

from pocket_ledger.mirrors.base import MirrorStore
from pocket_ledger.mirrors.entities import (
    AccountMirror,
    BudgetCategoryMirror,
    CategoryRegistry,
    GiveTakeMirror,
    TransactionMirror,
)

__all__ = [
    "MirrorStore",
    "AccountMirror",
    "TransactionMirror",
    "BudgetCategoryMirror",
    "GiveTakeMirror",
    "CategoryRegistry",
]
