"""
Derived Aggregate Views

DESIGN DECISION: Views are DETERMINISTIC pure functions over mirror rows.
Nothing here is cached or persisted. Every read recomputes from the
rows it is handed, so a view can never disagree with the mirror it was
computed from.

Cached totals (account balances, budget spent) are read as stored.
They are never recomputed from transactions here.
"""

import datetime as dt
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from pocket_ledger.config import get_settings
from pocket_ledger.models.ledger import (
    Account,
    AccountType,
    BudgetCategory,
    Category,
    GiveTakeRecord,
    GiveTakeStatus,
    GiveTakeType,
    Transaction,
    TransactionType,
)
from pocket_ledger.models.views import (
    BudgetOverview,
    BudgetProgress,
    BudgetStatus,
    GiveTakeStatusFilter,
    GiveTakeSummary,
    GiveTakeTypeFilter,
    MonthlySummary,
    TypeFilter,
)


ZERO = Decimal("0")
HUNDRED = Decimal("100")


# =============================================================================
# Accounts
# =============================================================================

def total_balance(accounts: Iterable[Account]) -> Decimal:
    """Sum of cached balances across all accounts."""
    return sum((a.balance for a in accounts), ZERO)


def balance_by_account_type(accounts: Iterable[Account]) -> dict[AccountType, Decimal]:
    totals = {account_type: ZERO for account_type in AccountType}
    for account in accounts:
        totals[account.type] += account.balance
    return totals


# =============================================================================
# Transactions
# =============================================================================

def monthly_summary(
    transactions: Iterable[Transaction],
    today: Optional[dt.date] = None,
) -> MonthlySummary:
    """
    Income and expense totals for the calendar month containing `today`.

    Income sums amounts as stored. Expense sums absolute amounts.
    """
    today = today or dt.date.today()
    summary = MonthlySummary(year=today.year, month=today.month)

    for t in transactions:
        if t.date.year != today.year or t.date.month != today.month:
            continue
        summary.transaction_count += 1
        if t.type == TransactionType.INCOME:
            summary.income += t.amount
        else:
            summary.expense += abs(t.amount)

    return summary


def recent_transactions(
    transactions: Sequence[Transaction],
    limit: int = 5,
) -> list[Transaction]:
    """The first `limit` transactions in mirror order (newest first)."""
    return list(transactions[:limit])


def filter_transactions(
    transactions: Iterable[Transaction],
    type_filter: TypeFilter = TypeFilter.ALL,
    search: str = "",
) -> list[Transaction]:
    """
    Filter by type and by a case-insensitive search over description
    and category. An empty search matches everything.
    """
    needle = search.lower()
    results = []
    for t in transactions:
        if type_filter != TypeFilter.ALL and t.type.value != type_filter.value:
            continue
        if needle and needle not in t.description.lower() and needle not in t.category.lower():
            continue
        results.append(t)
    return results


# =============================================================================
# Budgets
# =============================================================================

def budget_progress(
    category: BudgetCategory,
    warning_percent: Optional[Decimal] = None,
    exceeded_percent: Optional[Decimal] = None,
) -> BudgetProgress:
    """
    Usage of one budget category.

    Thresholds default to the configured budget warning/exceeded percents.
    With nothing budgeted the percentage is undefined and the category is
    exceeded as soon as anything is spent.
    """
    if warning_percent is None or exceeded_percent is None:
        settings = get_settings().app
        warning_percent = settings.budget_warning_percent if warning_percent is None else warning_percent
        exceeded_percent = settings.budget_exceeded_percent if exceeded_percent is None else exceeded_percent

    if category.budgeted > 0:
        percentage = category.spent / category.budgeted * HUNDRED
        if percentage >= exceeded_percent:
            status = BudgetStatus.EXCEEDED
        elif percentage >= warning_percent:
            status = BudgetStatus.WARNING
        else:
            status = BudgetStatus.GOOD
        progress = min(max(percentage, ZERO), HUNDRED)
    else:
        percentage = None
        if category.spent > 0:
            status = BudgetStatus.EXCEEDED
            progress = HUNDRED
        else:
            status = BudgetStatus.GOOD
            progress = ZERO

    return BudgetProgress(
        category_id=category.id,
        name=category.name,
        color=category.color,
        budgeted=category.budgeted,
        spent=category.spent,
        remaining=category.budgeted - category.spent,
        percentage_used=percentage,
        progress_percent=progress,
        status=status,
    )


def budget_overview(
    categories: Sequence[BudgetCategory],
    warning_percent: Optional[Decimal] = None,
    exceeded_percent: Optional[Decimal] = None,
) -> BudgetOverview:
    total_budgeted = sum((c.budgeted for c in categories), ZERO)
    total_spent = sum((c.spent for c in categories), ZERO)
    return BudgetOverview(
        categories=[
            budget_progress(c, warning_percent, exceeded_percent) for c in categories
        ],
        total_budgeted=total_budgeted,
        total_spent=total_spent,
        total_remaining=total_budgeted - total_spent,
    )


# =============================================================================
# Give / take
# =============================================================================

def give_take_summary(records: Iterable[GiveTakeRecord]) -> GiveTakeSummary:
    summary = GiveTakeSummary()
    for record in records:
        if record.status == GiveTakeStatus.SETTLED:
            summary.settled_count += 1
            continue
        summary.pending_count += 1
        if record.type == GiveTakeType.GIVE:
            summary.pending_give += record.amount
        else:
            summary.pending_take += record.amount
    return summary


def filter_give_take(
    records: Iterable[GiveTakeRecord],
    type_filter: GiveTakeTypeFilter = GiveTakeTypeFilter.ALL,
    status_filter: GiveTakeStatusFilter = GiveTakeStatusFilter.ALL,
) -> list[GiveTakeRecord]:
    return [
        r for r in records
        if (type_filter == GiveTakeTypeFilter.ALL or r.type.value == type_filter.value)
        and (status_filter == GiveTakeStatusFilter.ALL or r.status.value == status_filter.value)
    ]


# =============================================================================
# Category registry
# =============================================================================

def categories_by_type(
    categories: Iterable[Category],
    type: TransactionType,
) -> list[Category]:
    return [c for c in categories if c.type == type]
