"""
Data Models Package

This package contains all Pydantic models used in Pocket Ledger.
All data flowing between the store, the mirrors and the caller must
conform to these schemas.
"""

from pocket_ledger.models.ledger import (
    Account,
    AccountDraft,
    AccountPatch,
    AccountType,
    BudgetCategory,
    BudgetCategoryDraft,
    BudgetCategoryPatch,
    Category,
    CategoryDraft,
    GiveTakeDraft,
    GiveTakePatch,
    GiveTakeRecord,
    GiveTakeStatus,
    GiveTakeType,
    LedgerDraft,
    LedgerPatch,
    LedgerRow,
    LedgerTable,
    Transaction,
    TransactionDraft,
    TransactionPatch,
    TransactionType,
    signed_amount,
)
from pocket_ledger.models.results import (
    LedgerError,
    LedgerErrorKind,
    OperationResult,
    ValidationIssue,
    ValidationResult,
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
from pocket_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Account",
    "AccountDraft",
    "AccountPatch",
    "AccountType",
    "BudgetCategory",
    "BudgetCategoryDraft",
    "BudgetCategoryPatch",
    "Category",
    "CategoryDraft",
    "GiveTakeDraft",
    "GiveTakePatch",
    "GiveTakeRecord",
    "GiveTakeStatus",
    "GiveTakeType",
    "LedgerDraft",
    "LedgerPatch",
    "LedgerRow",
    "LedgerTable",
    "Transaction",
    "TransactionDraft",
    "TransactionPatch",
    "TransactionType",
    "signed_amount",
    # Results
    "LedgerError",
    "LedgerErrorKind",
    "OperationResult",
    "ValidationIssue",
    "ValidationResult",
    # Views
    "BudgetOverview",
    "BudgetProgress",
    "BudgetStatus",
    "GiveTakeStatusFilter",
    "GiveTakeSummary",
    "GiveTakeTypeFilter",
    "MonthlySummary",
    "TypeFilter",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
