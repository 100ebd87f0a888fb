"""
Derived View Models

Shapes returned by the aggregate views. None of these are ever persisted;
they are recomputed from the mirrors on every read.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class BudgetStatus(str, Enum):
    GOOD = "good"
    WARNING = "warning"
    EXCEEDED = "exceeded"


class TypeFilter(str, Enum):
    """Transaction list filter."""
    ALL = "all"
    INCOME = "income"
    EXPENSE = "expense"


class GiveTakeTypeFilter(str, Enum):
    ALL = "all"
    GIVE = "give"
    TAKE = "take"


class GiveTakeStatusFilter(str, Enum):
    ALL = "all"
    PENDING = "pending"
    SETTLED = "settled"


class BudgetProgress(BaseModel):
    """
    Usage of one budget category.

    `percentage_used` is NOT clamped and can exceed 100. It is None when
    nothing was budgeted. `progress_percent` is clamped to [0, 100] for
    progress bars.
    """

    category_id: UUID
    name: str
    color: str
    budgeted: Decimal
    spent: Decimal
    remaining: Decimal
    percentage_used: Optional[Decimal] = None
    progress_percent: Decimal
    status: BudgetStatus

    @property
    def usage_label(self) -> str:
        if self.percentage_used is None:
            return "no budget set"
        return f"{self.percentage_used:.1f}% used"


class BudgetOverview(BaseModel):
    categories: list[BudgetProgress] = Field(default_factory=list)
    total_budgeted: Decimal = Decimal("0")
    total_spent: Decimal = Decimal("0")
    total_remaining: Decimal = Decimal("0")

    @property
    def percentage_used(self) -> Optional[Decimal]:
        """Total spent as a percent of total budgeted, unclamped."""
        if self.total_budgeted == 0:
            return None
        return self.total_spent / self.total_budgeted * 100

    @property
    def exceeded(self) -> list[BudgetProgress]:
        return [c for c in self.categories if c.status == BudgetStatus.EXCEEDED]


class MonthlySummary(BaseModel):
    """Income and expense totals for one calendar month."""

    year: int
    month: int = Field(ge=1, le=12)
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")  # Absolute value
    transaction_count: int = 0

    @property
    def net(self) -> Decimal:
        return self.income - self.expense


class GiveTakeSummary(BaseModel):
    """Pending totals across give/take records."""

    pending_give: Decimal = Decimal("0")
    pending_take: Decimal = Decimal("0")
    pending_count: int = 0
    settled_count: int = 0

    @property
    def net_position(self) -> Decimal:
        """Positive when others owe the user more than the user owes."""
        return self.pending_give - self.pending_take
