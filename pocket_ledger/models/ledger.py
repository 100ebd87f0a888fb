"""
Core Data Models for Pocket Ledger

These models define the schemas for every row that flows between the
remote table store and the in-memory mirrors.

Three shapes exist per entity:
1. Row    - what the store returns (id, owner, timestamps included).
            Lenient: it accepts whatever the store already holds.
2. Draft  - what the user submits to create a row. Strict.
3. Patch  - a partial update. Every field optional; only fields that
            were explicitly set are dispatched to the store.

DESIGN DECISION: Money is always Decimal. Rows travel to and from the
store as JSON-compatible dicts, so decimals and dates become strings on
the way out and are parsed back here on the way in.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class LedgerTable(str, Enum):
    """Remote tables the ledger mirrors."""
    ACCOUNTS = "accounts"
    TRANSACTIONS = "transactions"
    BUDGET_CATEGORIES = "budget_categories"
    GIVE_TAKE = "give_take"
    CATEGORIES = "categories"


class AccountType(str, Enum):
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT = "credit"


class TransactionType(str, Enum):
    """
    Direction of a transaction.

    The stored type is authoritative. The amount sign (positive income,
    negative expense) is only a convention.
    """
    INCOME = "income"
    EXPENSE = "expense"


class GiveTakeType(str, Enum):
    """GIVE is money lent out, TAKE is money borrowed."""
    GIVE = "give"
    TAKE = "take"


class GiveTakeStatus(str, Enum):
    """
    Settlement status of a give/take record.

    CRITICAL: The only allowed transition is PENDING -> SETTLED.
    """
    PENDING = "pending"
    SETTLED = "settled"


DEFAULT_BUDGET_COLOR = "#3B82F6"


def signed_amount(amount: Decimal, type: TransactionType) -> Decimal:
    """Apply the sign convention: income positive, expense negative."""
    if type == TransactionType.EXPENSE:
        return -abs(amount)
    return abs(amount)


# =============================================================================
# ROWS - as stored remotely
# =============================================================================

class LedgerRow(BaseModel):
    """Columns every remote table has."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID
    user_id: str
    created_at: dt.datetime
    updated_at: dt.datetime


class Account(LedgerRow):
    """
    A money account.

    `balance` is a cached value. It is changed only through the explicit
    balance-update operation, never recomputed from transactions.
    """
    name: str
    type: AccountType
    balance: Decimal = Decimal("0")
    currency: str = "USD"


class Transaction(LedgerRow):
    """A single income or expense entry against an account."""
    account_id: UUID
    amount: Decimal
    description: str = ""
    category: str = ""
    type: TransactionType
    date: dt.date

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.EXPENSE


class BudgetCategory(LedgerRow):
    """
    A budget line.

    `spent` is an independently incremented counter. It can drift from the
    real sum of matching expenses when transactions are edited or deleted.
    """
    name: str
    budgeted: Decimal = Decimal("0")
    spent: Decimal = Decimal("0")
    color: str = DEFAULT_BUDGET_COLOR


class GiveTakeRecord(LedgerRow):
    """An informal loan, tracked outside the transaction ledger."""
    name: str
    amount: Decimal
    date: dt.date
    type: GiveTakeType
    status: GiveTakeStatus = GiveTakeStatus.PENDING
    description: str = ""

    @field_validator('description', mode='before')
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @property
    def is_pending(self) -> bool:
        return self.status == GiveTakeStatus.PENDING

    def allows_status(self, status: GiveTakeStatus) -> bool:
        """Settled records never go back to pending."""
        return not (
            self.status == GiveTakeStatus.SETTLED
            and status == GiveTakeStatus.PENDING
        )


class Category(LedgerRow):
    """
    A free-floating category tag from the category registry.

    Transactions reference categories by name only. There is no link to
    BudgetCategory ids.
    """
    name: str
    type: TransactionType


# =============================================================================
# DRAFTS - what a user submits to create a row
# =============================================================================

class LedgerDraft(BaseModel):
    """Base for insert payloads."""
    model_config = ConfigDict(str_strip_whitespace=True)

    def to_fields(self) -> dict[str, Any]:
        """Serialize to the JSON-compatible dict sent to the store."""
        return self.model_dump(mode="json")


class AccountDraft(LedgerDraft):
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType
    balance: Decimal = Field(default=Decimal("0"), decimal_places=2)
    currency: str = Field(default="USD", min_length=3, max_length=3)

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class TransactionDraft(LedgerDraft):
    account_id: UUID
    amount: Decimal = Field(..., decimal_places=2)
    description: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    date: dt.date = Field(default_factory=dt.date.today)


class BudgetCategoryDraft(LedgerDraft):
    name: str = Field(..., min_length=1, max_length=100)
    budgeted: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    spent: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    color: str = Field(default=DEFAULT_BUDGET_COLOR, max_length=20)


class GiveTakeDraft(LedgerDraft):
    name: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    date: dt.date = Field(default_factory=dt.date.today)
    type: GiveTakeType
    status: GiveTakeStatus = GiveTakeStatus.PENDING
    description: str = Field(default="", max_length=500)


class CategoryDraft(LedgerDraft):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType


# =============================================================================
# PATCHES - partial updates
# =============================================================================

class LedgerPatch(BaseModel):
    """
    Base for partial updates.

    Only explicitly set fields are dispatched. Setting a field to None is
    rejected: a patch can change a value, not erase it.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    @model_validator(mode='after')
    def reject_explicit_none(self) -> 'LedgerPatch':
        for name in self.model_fields_set:
            if getattr(self, name) is None:
                raise ValueError(f"Field '{name}' cannot be set to null")
        return self

    @property
    def is_empty(self) -> bool:
        return not self.model_fields_set

    def to_fields(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_unset=True)


class AccountPatch(LedgerPatch):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    balance: Optional[Decimal] = Field(default=None, decimal_places=2)


class TransactionPatch(LedgerPatch):
    account_id: Optional[UUID] = None
    amount: Optional[Decimal] = Field(default=None, decimal_places=2)
    description: Optional[str] = Field(default=None, min_length=1, max_length=200)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[TransactionType] = None
    date: Optional[dt.date] = None


class BudgetCategoryPatch(LedgerPatch):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    budgeted: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    spent: Optional[Decimal] = Field(default=None, decimal_places=2)
    color: Optional[str] = Field(default=None, max_length=20)


class GiveTakePatch(LedgerPatch):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    date: Optional[dt.date] = None
    type: Optional[GiveTakeType] = None
    status: Optional[GiveTakeStatus] = None
    description: Optional[str] = Field(default=None, max_length=500)
