"""
Ledger Aggregator for Pocket Ledger

This module ties together the session mirrors, validation and audit
logging, and defines the end-to-end flows for every ledger operation:
1. Add transaction (validate -> insert -> balance update -> budget update)
2. Plain entity operations (accounts, budgets, give/take, categories)
3. Derived views over the current mirrors

DESIGN DECISION: Adding a transaction touches three rows in three tables,
and the store offers no multi-row transaction. The aggregator therefore
runs the steps as a unit of work under a configurable policy:

- rollback (default): if a dependent update fails, the steps already
  applied are compensated (balance restored, transaction deleted) and the
  caller gets WRITE_ERROR naming the failed step.
- best_effort: the transaction stays inserted and dependent failures are
  returned as warnings.

A missing account or budget category is never a failure. That step is
skipped, logged and reported as a NOT_FOUND warning.

Editing or deleting a transaction never adjusts balances or budget spent.
"""

import datetime as dt
from decimal import Decimal
from typing import Any, Optional, TypeVar, Union
from uuid import UUID

import structlog
from pydantic import BaseModel

from pocket_ledger.audit import AuditLogger, configure_logging, create_correlation_id
from pocket_ledger.auth import AuthProvider
from pocket_ledger.config import get_settings
from pocket_ledger.models.audit import AuditEventBuilder
from pocket_ledger.models.ledger import (
    Account,
    AccountDraft,
    AccountType,
    BudgetCategory,
    BudgetCategoryDraft,
    Category,
    CategoryDraft,
    GiveTakeDraft,
    GiveTakePatch,
    GiveTakeRecord,
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
    ValidationResult,
)
from pocket_ledger.models.views import (
    BudgetOverview,
    GiveTakeStatusFilter,
    GiveTakeSummary,
    GiveTakeTypeFilter,
    MonthlySummary,
    TypeFilter,
)
from pocket_ledger.queries import views
from pocket_ledger.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsTableStorage,
    InMemoryAuditStorage,
    InMemoryTableStorage,
    TableStorageInterface,
)
from pocket_ledger.session import LedgerSession, SessionManager
from pocket_ledger.validation import LedgerValidator


ModelT = TypeVar("ModelT", bound=BaseModel)

BALANCE_STEP = "balance update"
BUDGET_STEP = "budget update"
INSERT_STEP = "transaction insert"

logger = structlog.get_logger(__name__)


class LedgerAggregator:
    """
    Every ledger operation for one session.

    Operations never raise for expected failures. They return an
    OperationResult whose error kind is one of AUTH_REQUIRED,
    FETCH_ERROR, WRITE_ERROR, NOT_FOUND or INVALID_INPUT.
    """

    def __init__(
        self,
        session: LedgerSession,
        validator: Optional[LedgerValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        sync_policy: Optional[str] = None,
    ):
        self._session = session
        self._validator = validator or LedgerValidator()
        self._audit_logger = audit_logger
        self._sync_policy = sync_policy or get_settings().app.transaction_sync_policy
        if self._sync_policy not in ("rollback", "best_effort"):
            raise ValueError(f"Unknown transaction sync policy: {self._sync_policy}")

    @property
    def session(self) -> LedgerSession:
        return self._session

    @property
    def sync_policy(self) -> str:
        return self._sync_policy

    # -------------------------------------------------------------------------
    # Validation helpers
    # -------------------------------------------------------------------------

    async def _reject(
        self,
        table: LedgerTable,
        validation: ValidationResult,
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult:
        if self._audit_logger:
            await self._audit_logger.log(
                AuditEventBuilder.validation_failed(
                    table=table.value,
                    issues=[issue.model_dump() for issue in validation.issues],
                    user_id=self._session.accounts.user_id,
                    correlation_id=correlation_id,
                )
            )
        return OperationResult.fail(
            LedgerErrorKind.INVALID_INPUT,
            self._validator.get_user_friendly_summary(validation),
            table=table.value,
        )

    async def _parse(
        self,
        model_cls: type[ModelT],
        payload: Any,
        table: LedgerTable,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Optional[ModelT], Optional[OperationResult]]:
        model, validation = self._validator.parse(model_cls, payload)
        if model is None:
            return None, await self._reject(table, validation, correlation_id)
        return model, None

    def _note(self, table: LedgerTable, validation: ValidationResult) -> None:
        """Log non-blocking validation findings."""
        for issue in validation.issues:
            if issue.severity != "error":
                logger.info(
                    "validation_note",
                    table=table.value,
                    field=issue.field,
                    issue_type=issue.issue_type,
                    message=issue.message,
                )

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def add_transaction(
        self,
        draft: Union[TransactionDraft, dict],
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult[Transaction]:
        """
        Insert a transaction and apply its effect on the account balance
        and, for expenses, on the matching budget category.
        """
        correlation_id = correlation_id or create_correlation_id()
        s = self._session

        draft, rejected = await self._parse(
            TransactionDraft, draft, LedgerTable.TRANSACTIONS, correlation_id
        )
        if rejected is not None:
            return rejected

        validation = self._validator.validate_transaction(
            draft, s.accounts.rows, s.budget_categories.rows
        )
        if validation.has_errors:
            return await self._reject(LedgerTable.TRANSACTIONS, validation, correlation_id)
        self._note(LedgerTable.TRANSACTIONS, validation)

        inserted = await s.transactions.insert(draft, correlation_id)
        if not inserted.success:
            return inserted
        transaction = inserted.data
        warnings: list[LedgerError] = []

        # Step 2: account balance
        previous_balance: Optional[Decimal] = None
        account = s.accounts.get(transaction.account_id)
        if account is None:
            warnings.append(
                await self._skip(BALANCE_STEP, "Account not found", LedgerTable.ACCOUNTS, transaction, correlation_id)
            )
        else:
            result = await s.accounts.update_balance(
                account.id, account.balance + transaction.amount, correlation_id
            )
            if result.success:
                previous_balance = account.balance
            else:
                failure = await self._step_failed(BALANCE_STEP, result, transaction, correlation_id)
                if self._sync_policy == "rollback":
                    return await self._roll_back(transaction, failure, None, None, correlation_id)
                warnings.append(failure)

        # Step 3: budget spent
        if transaction.is_expense:
            result = await s.budget_categories.increment_spent(
                transaction.category, abs(transaction.amount), correlation_id
            )
            if result.error_kind == LedgerErrorKind.NOT_FOUND:
                warnings.append(
                    await self._skip(
                        BUDGET_STEP,
                        f"No budget category named '{transaction.category}'",
                        LedgerTable.BUDGET_CATEGORIES,
                        transaction,
                        correlation_id,
                    )
                )
            elif not result.success:
                failure = await self._step_failed(BUDGET_STEP, result, transaction, correlation_id)
                if self._sync_policy == "rollback":
                    return await self._roll_back(
                        transaction,
                        failure,
                        account.id if previous_balance is not None else None,
                        previous_balance,
                        correlation_id,
                    )
                warnings.append(failure)

        return OperationResult.ok(data=transaction, warnings=warnings)

    async def _skip(
        self,
        step: str,
        reason: str,
        table: LedgerTable,
        transaction: Transaction,
        correlation_id: UUID,
    ) -> LedgerError:
        if self._audit_logger:
            await self._audit_logger.log_sync_step_skipped(
                step=step,
                reason=reason,
                transaction_id=str(transaction.id),
                user_id=transaction.user_id,
                correlation_id=correlation_id,
            )
        else:
            logger.warning("sync_step_skipped", step=step, reason=reason, transaction_id=str(transaction.id))
        return LedgerError(
            kind=LedgerErrorKind.NOT_FOUND,
            message=f"{step.capitalize()} skipped: {reason}",
            table=table.value,
            entity_id=str(transaction.id),
        )

    async def _step_failed(
        self,
        step: str,
        result: OperationResult,
        transaction: Transaction,
        correlation_id: UUID,
    ) -> LedgerError:
        if self._audit_logger:
            await self._audit_logger.log_sync_step_failed(
                step=step,
                error_message=result.error_message or "",
                transaction_id=str(transaction.id),
                user_id=transaction.user_id,
                correlation_id=correlation_id,
            )
        return LedgerError(
            kind=result.error_kind or LedgerErrorKind.WRITE_ERROR,
            message=f"{step.capitalize()} failed: {result.error_message}",
            table=result.error.table if result.error else None,
            entity_id=str(transaction.id),
        )

    async def _roll_back(
        self,
        transaction: Transaction,
        failure: LedgerError,
        account_id: Optional[UUID],
        previous_balance: Optional[Decimal],
        correlation_id: UUID,
    ) -> OperationResult:
        """Undo the steps already applied, newest first."""
        s = self._session
        undone = []
        problems = []

        if account_id is not None and previous_balance is not None:
            restored = await s.accounts.update_balance(account_id, previous_balance, correlation_id)
            if restored.success:
                undone.append(BALANCE_STEP)
            else:
                problems.append(f"{BALANCE_STEP}: {restored.error_message}")

        removed = await s.transactions.remove(transaction.id, correlation_id)
        if removed.success:
            undone.append(INSERT_STEP)
        else:
            problems.append(f"{INSERT_STEP}: {removed.error_message}")

        if problems:
            message = f"{failure.message}. Rollback failed ({'; '.join(problems)})"
            if self._audit_logger:
                await self._audit_logger.log(
                    AuditEventBuilder.rollback_failed(
                        str(transaction.id), "; ".join(problems), transaction.user_id, correlation_id
                    )
                )
        else:
            message = f"{failure.message}. The transaction was not saved"
            if self._audit_logger:
                await self._audit_logger.log(
                    AuditEventBuilder.rollback_applied(
                        str(transaction.id), undone, transaction.user_id, correlation_id
                    )
                )

        return OperationResult.fail(
            LedgerErrorKind.WRITE_ERROR,
            message,
            table=failure.table,
            entity_id=str(transaction.id),
        )

    async def update_transaction(
        self,
        transaction_id: UUID,
        patch: Union[TransactionPatch, dict],
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult[Transaction]:
        """
        Edit a transaction. Balances and budget spent are NOT adjusted.

        A new amount is signed to match the transaction type.
        """
        patch, rejected = await self._parse(
            TransactionPatch, patch, LedgerTable.TRANSACTIONS, correlation_id
        )
        if rejected is not None:
            return rejected

        validation = self._validator.validate_transaction_patch(patch)
        if validation.has_errors:
            return await self._reject(LedgerTable.TRANSACTIONS, validation, correlation_id)

        current = self._session.transactions.get(transaction_id)
        kind = patch.type or (current.type if current else None)
        amount = patch.amount
        if amount is None and patch.type is not None and current is not None:
            # A type change alone still flips the stored sign
            amount = current.amount
        if amount is not None and kind is not None:
            patch = patch.model_copy(update={"amount": signed_amount(amount, kind)})

        return await self._session.transactions.update(transaction_id, patch, correlation_id)

    async def delete_transaction(
        self,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult:
        """Delete a transaction. Balances and budget spent are NOT adjusted."""
        return await self._session.transactions.remove(transaction_id, correlation_id)

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    async def add_account(
        self,
        draft: Union[AccountDraft, dict],
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult[Account]:
        if isinstance(draft, dict) and not draft.get("currency"):
            draft = {**draft, "currency": get_settings().app.default_currency}

        draft, rejected = await self._parse(AccountDraft, draft, LedgerTable.ACCOUNTS, correlation_id)
        if rejected is not None:
            return rejected
        return await self._session.accounts.insert(draft, correlation_id)

    async def update_account_balance(
        self,
        account_id: UUID,
        new_balance: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult[Account]:
        return await self._session.accounts.update_balance(account_id, new_balance, correlation_id)

    # -------------------------------------------------------------------------
    # Budget categories
    # -------------------------------------------------------------------------

    async def add_budget_category(
        self,
        draft: Union[BudgetCategoryDraft, dict],
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult[BudgetCategory]:
        draft, rejected = await self._parse(
            BudgetCategoryDraft, draft, LedgerTable.BUDGET_CATEGORIES, correlation_id
        )
        if rejected is not None:
            return rejected

        self._note(
            LedgerTable.BUDGET_CATEGORIES,
            self._validator.validate_budget_category(draft, self._session.budget_categories.rows),
        )
        return await self._session.budget_categories.insert(draft, correlation_id)

    async def update_budget_spent(
        self,
        category_name: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult[BudgetCategory]:
        """Add `amount` to the spent counter of the named budget category."""
        return await self._session.budget_categories.increment_spent(
            category_name, amount, correlation_id
        )

    # -------------------------------------------------------------------------
    # Give / take
    # -------------------------------------------------------------------------

    async def add_give_take(
        self,
        draft: Union[GiveTakeDraft, dict],
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult[GiveTakeRecord]:
        draft, rejected = await self._parse(GiveTakeDraft, draft, LedgerTable.GIVE_TAKE, correlation_id)
        if rejected is not None:
            return rejected
        return await self._session.give_take.insert(draft, correlation_id)

    async def update_give_take(
        self,
        record_id: UUID,
        patch: Union[GiveTakePatch, dict],
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult[GiveTakeRecord]:
        patch, rejected = await self._parse(GiveTakePatch, patch, LedgerTable.GIVE_TAKE, correlation_id)
        if rejected is not None:
            return rejected

        validation = self._validator.validate_give_take_patch(
            patch, self._session.give_take.get(record_id)
        )
        if validation.has_errors:
            return await self._reject(LedgerTable.GIVE_TAKE, validation, correlation_id)

        return await self._session.give_take.update(record_id, patch, correlation_id)

    async def delete_give_take(
        self,
        record_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult:
        return await self._session.give_take.remove(record_id, correlation_id)

    async def mark_settled(
        self,
        record_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult[GiveTakeRecord]:
        return await self._session.give_take.mark_settled(record_id, correlation_id)

    # -------------------------------------------------------------------------
    # Category registry
    # -------------------------------------------------------------------------

    async def add_category(
        self,
        name: str,
        type: TransactionType,
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult[Category]:
        registry = self._session.categories
        draft, _ = self._validator.parse(CategoryDraft, {"name": name, "type": type})
        if draft is not None:
            self._note(
                LedgerTable.CATEGORIES,
                self._validator.validate_category(draft, registry.rows),
            )
        return await registry.add(name, type, correlation_id)

    async def delete_category(
        self,
        category_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult:
        return await self._session.categories.delete(category_id, correlation_id)

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    def total_balance(self) -> Decimal:
        return views.total_balance(self._session.accounts)

    def balance_by_account_type(self) -> dict[AccountType, Decimal]:
        return views.balance_by_account_type(self._session.accounts)

    def monthly_summary(self, today: Optional[dt.date] = None) -> MonthlySummary:
        return views.monthly_summary(self._session.transactions, today)

    def recent_transactions(self, limit: int = 5) -> list[Transaction]:
        return views.recent_transactions(self._session.transactions.rows, limit)

    def search_transactions(
        self,
        type_filter: TypeFilter = TypeFilter.ALL,
        search: str = "",
    ) -> list[Transaction]:
        return views.filter_transactions(self._session.transactions, type_filter, search)

    def budget_overview(self) -> BudgetOverview:
        return views.budget_overview(self._session.budget_categories.rows)

    def give_take_summary(self) -> GiveTakeSummary:
        return views.give_take_summary(self._session.give_take)

    def filter_give_take(
        self,
        type_filter: GiveTakeTypeFilter = GiveTakeTypeFilter.ALL,
        status_filter: GiveTakeStatusFilter = GiveTakeStatusFilter.ALL,
    ) -> list[GiveTakeRecord]:
        return views.filter_give_take(self._session.give_take, type_filter, status_filter)

    def categories_by_type(self, type: TransactionType) -> list[Category]:
        return views.categories_by_type(self._session.categories, type)


def create_ledger_components(
    auth: AuthProvider,
    use_storage: bool = True,
) -> tuple[SessionManager, AuditLogger, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        auth: Identity collaborator the session manager listens to.
        use_storage: Whether to use the configured remote store.
                    Set to False for an in-memory store.

    Returns:
        (session_manager, audit_logger, sheets_client)
    """
    app_settings = get_settings().app
    configure_logging(app_settings.log_level)

    sheets_client = None
    table_storage: Optional[TableStorageInterface] = None
    audit_logger = None

    if use_storage and app_settings.storage_backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient()
            table_storage = GoogleSheetsTableStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            table_storage = None

    if table_storage is None:
        table_storage = InMemoryTableStorage()
        audit_logger = AuditLogger(InMemoryAuditStorage())

    sync_policy = app_settings.transaction_sync_policy
    manager = SessionManager(
        auth,
        table_storage,
        audit_logger=audit_logger,
        aggregator_factory=lambda session: LedgerAggregator(
            session,
            audit_logger=audit_logger,
            sync_policy=sync_policy,
        ),
    )

    return manager, audit_logger, sheets_client
