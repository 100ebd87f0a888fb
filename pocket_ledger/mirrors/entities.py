"""
Entity Mirrors

One mirror per remote table. Each exposes only the operations the
entity's lifecycle allows:

- Accounts and budget categories are never deleted.
- Transactions and give/take records support update and delete.
- The category registry supports add and delete, never update.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import ValidationError

from pocket_ledger.mirrors.base import MirrorStore
from pocket_ledger.models.audit import AuditEventBuilder
from pocket_ledger.models.ledger import (
    Account,
    AccountPatch,
    BudgetCategory,
    BudgetCategoryPatch,
    Category,
    CategoryDraft,
    GiveTakePatch,
    GiveTakeRecord,
    GiveTakeStatus,
    LedgerTable,
    Transaction,
    TransactionPatch,
    TransactionType,
)
from pocket_ledger.models.results import LedgerErrorKind, OperationResult


class AccountMirror(MirrorStore[Account]):
    """Accounts, in creation order."""

    table = LedgerTable.ACCOUNTS
    row_model = Account
    order_by = (("created_at", False),)

    async def update_balance(
        self,
        account_id: UUID,
        new_balance: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult[Account]:
        """Overwrite an account's cached balance."""
        try:
            patch = AccountPatch(balance=new_balance)
        except ValidationError as e:
            return self._invalid(e)

        current = self.get(account_id)
        result = await self._patch(account_id, patch.to_fields(), correlation_id)

        if result.success and self._audit_logger:
            await self._audit_logger.log_balance_updated(
                account_id=str(account_id),
                old_balance=current.balance if current else Decimal("0"),
                new_balance=result.data.balance,
                user_id=self._user_id,
                correlation_id=correlation_id,
            )
        return result


class TransactionMirror(MirrorStore[Transaction]):
    """Transactions, newest date first."""

    table = LedgerTable.TRANSACTIONS
    row_model = Transaction
    order_by = (("date", True),)
    newest_first = True

    async def update(
        self,
        transaction_id: UUID,
        patch: TransactionPatch,
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult[Transaction]:
        """Apply a partial update. Balances and budgets are NOT adjusted."""
        return await self._patch(transaction_id, patch.to_fields(), correlation_id)

    async def remove(
        self,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult:
        """Delete a transaction. Balances and budgets are NOT adjusted."""
        return await self._remove(transaction_id, correlation_id)


class BudgetCategoryMirror(MirrorStore[BudgetCategory]):
    """Budget categories, in creation order."""

    table = LedgerTable.BUDGET_CATEGORIES
    row_model = BudgetCategory
    order_by = (("created_at", False),)

    def find_by_name(self, name: str) -> Optional[BudgetCategory]:
        """Exact, case-sensitive name match. First match wins."""
        for category in self._rows:
            if category.name == name:
                return category
        return None

    async def increment_spent(
        self,
        name: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult[BudgetCategory]:
        """
        Add `amount` to the spent counter of the category called `name`.

        Returns NOT_FOUND when no category in the mirror has that name.
        """
        if self._user_id is None:
            return self._auth_required()

        category = self.find_by_name(name)
        if category is None:
            return OperationResult.fail(
                LedgerErrorKind.NOT_FOUND,
                "Category not found",
                table=self.table.value,
            )

        try:
            patch = BudgetCategoryPatch(spent=category.spent + amount)
        except ValidationError as e:
            return self._invalid(e)

        result = await self._patch(category.id, patch.to_fields(), correlation_id)

        if result.success and self._audit_logger:
            await self._audit_logger.log_budget_spent_updated(
                category_id=str(category.id),
                name=category.name,
                old_spent=category.spent,
                new_spent=result.data.spent,
                user_id=self._user_id,
                correlation_id=correlation_id,
            )
        return result


class GiveTakeMirror(MirrorStore[GiveTakeRecord]):
    """Give/take records, newest date first."""

    table = LedgerTable.GIVE_TAKE
    row_model = GiveTakeRecord
    order_by = (("date", True),)
    newest_first = True

    async def update(
        self,
        record_id: UUID,
        patch: GiveTakePatch,
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult[GiveTakeRecord]:
        current = self.get(record_id)
        if current and patch.status is not None and not current.allows_status(patch.status):
            return self._invalid("A settled record cannot be reopened")
        return await self._patch(record_id, patch.to_fields(), correlation_id)

    async def remove(
        self,
        record_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult:
        return await self._remove(record_id, correlation_id)

    async def mark_settled(
        self,
        record_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult[GiveTakeRecord]:
        """Settle a record. Settling an already settled record succeeds."""
        result = await self.update(
            record_id,
            GiveTakePatch(status=GiveTakeStatus.SETTLED),
            correlation_id,
        )
        if result.success and self._audit_logger:
            await self._audit_logger.log(
                AuditEventBuilder.record_settled(
                    str(record_id), result.data.name, self._user_id, correlation_id
                )
            )
        return result


class CategoryRegistry(MirrorStore[Category]):
    """
    Free-floating income/expense category names.

    Kept sorted by type, then name.
    """

    table = LedgerTable.CATEGORIES
    row_model = Category
    order_by = (("type", False), ("name", False))

    def _place(self, row: Category) -> None:
        self._rows.append(row)
        self._rows.sort(key=lambda c: (c.type.value, c.name))

    async def add(
        self,
        name: str,
        type: TransactionType,
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult[Category]:
        if not name or not name.strip():
            return self._invalid("Please enter a category name")
        try:
            draft = CategoryDraft(name=name, type=type)
        except ValidationError as e:
            return self._invalid(e)
        return await self.insert(draft, correlation_id)

    async def delete(
        self,
        category_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult:
        return await self._remove(category_id, correlation_id)
