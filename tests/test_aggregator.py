"""
Tests for the ledger aggregator.

Covers the cross-entity synchronization rules when a transaction is
added, both consistency policies, and the deliberate asymmetry that
editing or deleting a transaction leaves cached totals alone.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from pocket_ledger.models.audit import AuditEventType, AuditSeverity
from pocket_ledger.models.ledger import (
    GiveTakeStatus,
    TransactionDraft,
    TransactionType,
)
from pocket_ledger.models.results import LedgerErrorKind
from pocket_ledger.models.views import TypeFilter
from pocket_ledger.orchestrator import LedgerAggregator


def _draft(account_id, amount, type, category="Groceries", description="Shop"):
    return TransactionDraft(
        account_id=account_id,
        amount=Decimal(amount),
        description=description,
        category=category,
        type=type,
        date=date(2026, 3, 1),
    )


@pytest.fixture
def ledger(storage):
    """One account with balance 50 and a Groceries budget with 10 spent."""
    account = storage.seed("accounts", name="Main", type="checking", balance="50")
    budget = storage.seed("budget_categories", name="Groceries", budgeted="200", spent="10")
    return UUID(account["id"]), UUID(budget["id"])


async def _load(aggregator):
    results = await aggregator.session.load_all()
    assert all(r.success for r in results.values())


class TestAddTransaction:
    """The three-step add: insert, balance, budget."""

    @pytest.mark.asyncio
    async def test_income_raises_balance(self, aggregator, ledger):
        account_id, _ = ledger
        await _load(aggregator)

        result = await aggregator.add_transaction(
            _draft(account_id, "100", TransactionType.INCOME, category="Salary")
        )

        assert result.success
        assert result.warnings == []
        assert aggregator.session.accounts.get(account_id).balance == Decimal("150")
        assert len(aggregator.session.transactions) == 1

    @pytest.mark.asyncio
    async def test_expense_lowers_balance_and_raises_spent(self, aggregator, ledger, storage):
        account_id, budget_id = ledger
        await _load(aggregator)

        result = await aggregator.add_transaction(_draft(account_id, "-30", TransactionType.EXPENSE))

        assert result.success
        assert aggregator.session.accounts.get(account_id).balance == Decimal("20")
        assert aggregator.session.budget_categories.get(budget_id).spent == Decimal("40")
        stored_budget = storage.all_rows("budget_categories")[0]
        assert Decimal(stored_budget["spent"]) == Decimal("40")

    @pytest.mark.asyncio
    async def test_expense_uses_absolute_amount(self, aggregator, ledger):
        account_id, budget_id = ledger
        await _load(aggregator)
        await aggregator.add_transaction(_draft(account_id, "-40", TransactionType.EXPENSE))
        assert aggregator.session.budget_categories.get(budget_id).spent == Decimal("50")

    @pytest.mark.asyncio
    async def test_income_leaves_budget_alone(self, aggregator, ledger):
        account_id, budget_id = ledger
        await _load(aggregator)
        await aggregator.add_transaction(
            _draft(account_id, "100", TransactionType.INCOME, category="Groceries")
        )
        assert aggregator.session.budget_categories.get(budget_id).spent == Decimal("10")

    @pytest.mark.asyncio
    async def test_unknown_account_skips_balance(self, aggregator, ledger, audit_storage):
        """A missing account is not an error for the caller."""
        account_id, _ = ledger
        await _load(aggregator)

        correlation_id = uuid4()
        result = await aggregator.add_transaction(
            _draft(uuid4(), "100", TransactionType.INCOME, category="Salary"),
            correlation_id,
        )

        assert result.success
        assert result.error is None
        assert [w.kind for w in result.warnings] == [LedgerErrorKind.NOT_FOUND]
        assert aggregator.session.accounts.get(account_id).balance == Decimal("50")
        assert len(aggregator.session.transactions) == 1
        events = await audit_storage.get_events_by_correlation_id(correlation_id)
        assert AuditEventType.SYNC_STEP_SKIPPED in [e.event_type for e in events]

    @pytest.mark.asyncio
    async def test_unknown_budget_category_skips_spent(self, aggregator, ledger):
        account_id, budget_id = ledger
        await _load(aggregator)

        result = await aggregator.add_transaction(
            _draft(account_id, "-5", TransactionType.EXPENSE, category="Travel")
        )

        assert result.success
        assert result.warnings[0].kind == LedgerErrorKind.NOT_FOUND
        assert result.warnings[0].table == "budget_categories"
        assert aggregator.session.accounts.get(account_id).balance == Decimal("45")
        assert aggregator.session.budget_categories.get(budget_id).spent == Decimal("10")

    @pytest.mark.asyncio
    async def test_zero_amount_rejected(self, aggregator, ledger, storage):
        account_id, _ = ledger
        await _load(aggregator)
        result = await aggregator.add_transaction(_draft(account_id, "0", TransactionType.EXPENSE))
        assert result.error_kind == LedgerErrorKind.INVALID_INPUT
        assert result.error_message.startswith("Please fix the following:")
        assert "zero" in result.error_message
        assert ("insert", "transactions") not in storage.calls

    @pytest.mark.asyncio
    async def test_raw_dict_validated(self, aggregator, ledger, storage):
        account_id, _ = ledger
        await _load(aggregator)
        result = await aggregator.add_transaction({
            "account_id": str(account_id),
            "amount": "12.50",
            "description": "  ",
            "category": "Food",
            "type": "expense",
        })
        assert result.error_kind == LedgerErrorKind.INVALID_INPUT
        assert "cannot be blank" in result.error_message
        assert ("insert", "transactions") not in storage.calls

    @pytest.mark.asyncio
    async def test_insert_failure_touches_nothing(self, aggregator, ledger, storage):
        account_id, budget_id = ledger
        await _load(aggregator)
        storage.fail("insert", "transactions")

        result = await aggregator.add_transaction(_draft(account_id, "-30", TransactionType.EXPENSE))

        assert result.error_kind == LedgerErrorKind.WRITE_ERROR
        assert aggregator.session.accounts.get(account_id).balance == Decimal("50")
        assert aggregator.session.budget_categories.get(budget_id).spent == Decimal("10")

    @pytest.mark.asyncio
    async def test_closed_session_requires_auth(self, aggregator, ledger, storage):
        account_id, _ = ledger
        await _load(aggregator)
        await aggregator.session.close()
        storage.calls.clear()

        result = await aggregator.add_transaction(_draft(account_id, "-30", TransactionType.EXPENSE))

        assert result.error_kind == LedgerErrorKind.AUTH_REQUIRED
        assert storage.calls == []


class TestRollbackPolicy:
    """A failed dependent update undoes the steps already applied."""

    @pytest.mark.asyncio
    async def test_balance_failure_removes_transaction(self, aggregator, ledger, storage):
        account_id, _ = ledger
        await _load(aggregator)
        storage.fail("update", "accounts")

        result = await aggregator.add_transaction(_draft(account_id, "-30", TransactionType.EXPENSE))

        assert result.error_kind == LedgerErrorKind.WRITE_ERROR
        assert result.error_message.startswith("Balance update failed")
        assert len(aggregator.session.transactions) == 0
        assert storage.all_rows("transactions") == []
        assert ("update", "budget_categories") not in storage.calls

    @pytest.mark.asyncio
    async def test_budget_failure_restores_balance(self, aggregator, ledger, storage, audit_storage):
        account_id, budget_id = ledger
        await _load(aggregator)
        storage.fail("update", "budget_categories")

        result = await aggregator.add_transaction(_draft(account_id, "-30", TransactionType.EXPENSE))

        assert result.error_kind == LedgerErrorKind.WRITE_ERROR
        assert result.error_message.startswith("Budget update failed")
        assert aggregator.session.accounts.get(account_id).balance == Decimal("50")
        assert Decimal(storage.all_rows("accounts")[0]["balance"]) == Decimal("50")
        assert storage.all_rows("transactions") == []
        assert aggregator.session.budget_categories.get(budget_id).spent == Decimal("10")

        events = await audit_storage.get_recent_events("user-1")
        rollback = [e for e in events if e.event_type == AuditEventType.ROLLBACK_APPLIED]
        assert rollback[0].details["undone"] == ["balance update", "transaction insert"]

    @pytest.mark.asyncio
    async def test_failed_compensation_is_critical(self, aggregator, ledger, storage, audit_storage):
        account_id, _ = ledger
        await _load(aggregator)
        storage.fail("update", "budget_categories")
        storage.fail("delete", "transactions")

        result = await aggregator.add_transaction(_draft(account_id, "-30", TransactionType.EXPENSE))

        assert result.error_kind == LedgerErrorKind.WRITE_ERROR
        assert "Rollback failed" in result.error_message
        events = await audit_storage.get_recent_events("user-1")
        failed = [e for e in events if e.event_type == AuditEventType.ROLLBACK_FAILED]
        assert failed[0].severity == AuditSeverity.CRITICAL


class TestBestEffortPolicy:
    """Dependent failures are reported as warnings and nothing is undone."""

    @pytest.fixture
    def best_effort(self, session, audit_logger):
        return LedgerAggregator(session, audit_logger=audit_logger, sync_policy="best_effort")

    @pytest.mark.asyncio
    async def test_balance_failure_keeps_transaction(self, best_effort, ledger, storage):
        account_id, budget_id = ledger
        await _load(best_effort)
        storage.fail("update", "accounts")

        result = await best_effort.add_transaction(_draft(account_id, "-30", TransactionType.EXPENSE))

        assert result.success
        assert result.warnings[0].kind == LedgerErrorKind.WRITE_ERROR
        assert len(storage.all_rows("transactions")) == 1
        assert best_effort.session.accounts.get(account_id).balance == Decimal("50")
        assert best_effort.session.budget_categories.get(budget_id).spent == Decimal("40")

    @pytest.mark.asyncio
    async def test_budget_failure_keeps_balance(self, best_effort, ledger, storage):
        account_id, _ = ledger
        await _load(best_effort)
        storage.fail("update", "budget_categories")

        result = await best_effort.add_transaction(_draft(account_id, "-30", TransactionType.EXPENSE))

        assert result.success
        assert result.warnings[0].message.startswith("Budget update failed")
        assert best_effort.session.accounts.get(account_id).balance == Decimal("20")

    def test_unknown_policy_rejected(self, session):
        with pytest.raises(ValueError):
            LedgerAggregator(session, sync_policy="eventually")


class TestEditAndDelete:
    """Editing or deleting a transaction never touches cached totals."""

    @pytest.mark.asyncio
    async def test_delete_leaves_balance_and_spent(self, aggregator, ledger, storage):
        account_id, budget_id = ledger
        await _load(aggregator)
        added = await aggregator.add_transaction(_draft(account_id, "-30", TransactionType.EXPENSE))

        result = await aggregator.delete_transaction(added.data.id)

        assert result.success
        assert len(aggregator.session.transactions) == 0
        assert aggregator.session.accounts.get(account_id).balance == Decimal("20")
        assert aggregator.session.budget_categories.get(budget_id).spent == Decimal("40")

    @pytest.mark.asyncio
    async def test_edit_leaves_balance_and_spent(self, aggregator, ledger):
        account_id, budget_id = ledger
        await _load(aggregator)
        added = await aggregator.add_transaction(_draft(account_id, "-30", TransactionType.EXPENSE))

        result = await aggregator.update_transaction(added.data.id, {"amount": "75"})

        assert result.success
        assert result.data.amount == Decimal("-75")
        assert aggregator.session.accounts.get(account_id).balance == Decimal("20")
        assert aggregator.session.budget_categories.get(budget_id).spent == Decimal("40")

    @pytest.mark.asyncio
    async def test_edit_signs_amount_by_new_type(self, aggregator, ledger):
        account_id, _ = ledger
        await _load(aggregator)
        added = await aggregator.add_transaction(_draft(account_id, "-30", TransactionType.EXPENSE))

        result = await aggregator.update_transaction(
            added.data.id, {"amount": "30", "type": "income"}
        )

        assert result.data.amount == Decimal("30")
        assert result.data.type == TransactionType.INCOME

    @pytest.mark.asyncio
    async def test_type_only_edit_flips_sign(self, aggregator, ledger, storage):
        """Changing only the type re-signs the stored amount."""
        account_id, _ = ledger
        await _load(aggregator)
        added = await aggregator.add_transaction(
            _draft(account_id, "20", TransactionType.INCOME, category="Refund")
        )

        result = await aggregator.update_transaction(added.data.id, {"type": "expense"})

        assert result.data.type == TransactionType.EXPENSE
        assert result.data.amount == Decimal("-20")
        assert Decimal(storage.all_rows("transactions")[0]["amount"]) == Decimal("-20")
        assert aggregator.session.accounts.get(account_id).balance == Decimal("70")

    @pytest.mark.asyncio
    async def test_empty_edit_rejected(self, aggregator, ledger):
        account_id, _ = ledger
        await _load(aggregator)
        added = await aggregator.add_transaction(_draft(account_id, "-30", TransactionType.EXPENSE))
        result = await aggregator.update_transaction(added.data.id, {})
        assert result.error_kind == LedgerErrorKind.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_delete_unknown_is_write_error(self, aggregator, ledger):
        await _load(aggregator)
        result = await aggregator.delete_transaction(uuid4())
        assert result.error_kind == LedgerErrorKind.WRITE_ERROR


class TestOtherOperations:
    @pytest.mark.asyncio
    async def test_add_account_uses_default_currency(self, aggregator):
        result = await aggregator.add_account({"name": "Wallet", "type": "checking"})
        assert result.success
        assert result.data.currency == "USD"
        assert result.data.balance == Decimal("0")

    @pytest.mark.asyncio
    async def test_update_account_balance(self, aggregator, ledger):
        account_id, _ = ledger
        await _load(aggregator)
        result = await aggregator.update_account_balance(account_id, Decimal("999"))
        assert result.success
        assert aggregator.total_balance() == Decimal("999")

    @pytest.mark.asyncio
    async def test_add_budget_category(self, aggregator):
        result = await aggregator.add_budget_category({"name": "Fun", "budgeted": "100"})
        assert result.success
        assert result.data.color == "#3B82F6"
        assert aggregator.budget_overview().total_budgeted == Decimal("100")

    @pytest.mark.asyncio
    async def test_update_budget_spent_not_found(self, aggregator, ledger):
        await _load(aggregator)
        result = await aggregator.update_budget_spent("Nope", Decimal("5"))
        assert result.error_kind == LedgerErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_give_take_lifecycle(self, aggregator):
        added = await aggregator.add_give_take(
            {"name": "Sam", "amount": "25", "type": "give", "date": "2026-02-01"}
        )
        assert added.success

        first = await aggregator.mark_settled(added.data.id)
        second = await aggregator.mark_settled(added.data.id)
        assert first.success and second.success
        assert second.data.status == GiveTakeStatus.SETTLED
        assert aggregator.give_take_summary().settled_count == 1

        reopened = await aggregator.update_give_take(added.data.id, {"status": "pending"})
        assert reopened.error_kind == LedgerErrorKind.INVALID_INPUT

        renamed = await aggregator.update_give_take(added.data.id, {"description": "lunch"})
        assert renamed.data.description == "lunch"

        deleted = await aggregator.delete_give_take(added.data.id)
        assert deleted.success
        assert aggregator.give_take_summary().settled_count == 0

    @pytest.mark.asyncio
    async def test_give_take_amount_must_be_positive(self, aggregator):
        result = await aggregator.add_give_take({"name": "Sam", "amount": "-5", "type": "take"})
        assert result.error_kind == LedgerErrorKind.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_categories(self, aggregator):
        added = await aggregator.add_category(" Gifts ", TransactionType.INCOME)
        await aggregator.add_category("Gifts", TransactionType.INCOME)
        blank = await aggregator.add_category("", TransactionType.INCOME)

        assert added.data.name == "Gifts"
        assert blank.error_kind == LedgerErrorKind.INVALID_INPUT
        assert len(aggregator.categories_by_type(TransactionType.INCOME)) == 2

        await aggregator.delete_category(added.data.id)
        assert len(aggregator.categories_by_type(TransactionType.INCOME)) == 1


class TestViewPassthroughs:
    @pytest.mark.asyncio
    async def test_search_coffee_expenses(self, aggregator, ledger):
        account_id, _ = ledger
        await _load(aggregator)
        await aggregator.add_transaction(
            _draft(account_id, "-4", TransactionType.EXPENSE, category="Food", description="Coffee")
        )
        await aggregator.add_transaction(
            _draft(account_id, "-9", TransactionType.EXPENSE, category="Coffee beans", description="Beans")
        )
        await aggregator.add_transaction(
            _draft(account_id, "20", TransactionType.INCOME, category="Refund", description="coffee refund")
        )
        await aggregator.add_transaction(
            _draft(account_id, "-15", TransactionType.EXPENSE, category="Travel", description="Bus")
        )

        found = aggregator.search_transactions(TypeFilter.EXPENSE, "coffee")

        assert sorted(t.description for t in found) == ["Beans", "Coffee"]
        assert len(aggregator.recent_transactions(limit=2)) == 2

    @pytest.mark.asyncio
    async def test_monthly_summary(self, aggregator, ledger):
        account_id, _ = ledger
        await _load(aggregator)
        await aggregator.add_transaction(_draft(account_id, "100", TransactionType.INCOME, category="Salary"))
        await aggregator.add_transaction(_draft(account_id, "-30", TransactionType.EXPENSE))

        summary = aggregator.monthly_summary(today=date(2026, 3, 31))

        assert summary.income == Decimal("100")
        assert summary.expense == Decimal("30")
        assert aggregator.total_balance() == Decimal("120")
