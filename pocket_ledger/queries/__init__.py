"""Derived aggregate views over mirror rows."""

from pocket_ledger.queries.views import (
    balance_by_account_type,
    budget_overview,
    budget_progress,
    categories_by_type,
    filter_give_take,
    filter_transactions,
    give_take_summary,
    monthly_summary,
    recent_transactions,
    total_balance,
)

__all__ = [
    "balance_by_account_type",
    "budget_overview",
    "budget_progress",
    "categories_by_type",
    "filter_give_take",
    "filter_transactions",
    "give_take_summary",
    "monthly_summary",
    "recent_transactions",
    "total_balance",
]
