"""
Two-Stage Validation Pipeline

DESIGN DECISION: Every draft and patch is validated in two distinct
stages before anything is dispatched to the store.

STAGE 1 - SCHEMA VALIDATION:
- Type checking
- Required field presence
- Lengths, ranges and decimal places
- Blank names and descriptions

STAGE 2 - SEMANTIC VALIDATION:
- Zero transaction amounts
- Amount sign disagreeing with the transaction type
- References to accounts that are not in the mirror
- Expenses whose category has no budget line
- Settled give/take records being reopened
- Duplicate names

Stage 2 only runs when stage 1 passes. It reads the current mirror
contents passed in by the caller and never touches the store.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them and the caller decides.
"""

from decimal import Decimal
from typing import Any, Optional, Sequence, TypeVar

from pydantic import BaseModel, ValidationError

from pocket_ledger.models.ledger import (
    Account,
    BudgetCategory,
    BudgetCategoryDraft,
    Category,
    CategoryDraft,
    GiveTakePatch,
    GiveTakeRecord,
    LedgerPatch,
    TransactionDraft,
    TransactionPatch,
    TransactionType,
)
from pocket_ledger.models.results import ValidationIssue, ValidationResult


ModelT = TypeVar("ModelT", bound=BaseModel)

_NAME_FIELDS = {"name", "description", "category"}


class LedgerValidator:
    """
    Validates drafts and patches through a two-stage pipeline.

    Stage 1: Schema validation (pydantic, no mirror access)
    Stage 2: Semantic validation (checks against mirror contents)
    """

    # -------------------------------------------------------------------------
    # Stage 1
    # -------------------------------------------------------------------------

    def parse(
        self,
        model_cls: type[ModelT],
        data: Any,
    ) -> tuple[Optional[ModelT], ValidationResult]:
        """
        Stage 1: Build a draft or patch from raw input.

        Returns: (model or None, result)
        """
        if isinstance(data, model_cls):
            return data, ValidationResult(schema_valid=True, semantic_valid=True)

        try:
            model = model_cls.model_validate(data)
        except ValidationError as e:
            issues = [_schema_issue(err) for err in e.errors()]
            return None, ValidationResult(
                schema_valid=False,
                semantic_valid=False,
                issues=issues,
            )

        return model, ValidationResult(schema_valid=True, semantic_valid=True)

    # -------------------------------------------------------------------------
    # Stage 2
    # -------------------------------------------------------------------------

    def validate_transaction(
        self,
        draft: TransactionDraft,
        accounts: Optional[Sequence[Account]] = None,
        budget_categories: Optional[Sequence[BudgetCategory]] = None,
    ) -> ValidationResult:
        """
        Semantic checks for a new transaction.

        Args:
            draft: The transaction to be inserted
            accounts: Current account mirror. None skips the account check.
            budget_categories: Current budget mirror. None skips the budget check.
        """
        issues = self._check_amount(draft.amount, draft.type)

        if accounts is not None and not any(a.id == draft.account_id for a in accounts):
            issues.append(ValidationIssue(
                field="account_id",
                issue_type="unknown_account",
                message="Account not found; its balance will not be updated",
                severity="warning",
            ))

        if (
            draft.type == TransactionType.EXPENSE
            and budget_categories is not None
            and not any(c.name == draft.category for c in budget_categories)
        ):
            issues.append(ValidationIssue(
                field="category",
                issue_type="no_budget",
                message=f"No budget category named '{draft.category}'",
                severity="info",
            ))

        return _result(issues)

    def validate_patch(self, patch: LedgerPatch) -> ValidationResult:
        """An update must change at least one field."""
        issues = []
        if patch.is_empty:
            issues.append(ValidationIssue(
                field="patch",
                issue_type="empty",
                message="Nothing to update",
                severity="error",
            ))
        return _result(issues)

    def validate_transaction_patch(self, patch: TransactionPatch) -> ValidationResult:
        result = self.validate_patch(patch)
        issues = list(result.issues)
        if patch.amount is not None and patch.amount == 0:
            issues.extend(self._check_amount(patch.amount, patch.type or TransactionType.EXPENSE))
        return _result(issues)

    def validate_give_take_patch(
        self,
        patch: GiveTakePatch,
        current: Optional[GiveTakeRecord] = None,
    ) -> ValidationResult:
        result = self.validate_patch(patch)
        issues = list(result.issues)

        if (
            current is not None
            and patch.status is not None
            and not current.allows_status(patch.status)
        ):
            issues.append(ValidationIssue(
                field="status",
                issue_type="invalid_transition",
                message="A settled record cannot be reopened",
                severity="error",
            ))

        return _result(issues)

    def validate_budget_category(
        self,
        draft: BudgetCategoryDraft,
        existing: Sequence[BudgetCategory] = (),
    ) -> ValidationResult:
        issues = []
        if any(c.name == draft.name for c in existing):
            # Spent updates match by name, so only the first one will move.
            issues.append(ValidationIssue(
                field="name",
                issue_type="duplicate",
                message=f"A budget category named '{draft.name}' already exists",
                severity="warning",
            ))
        return _result(issues)

    def validate_category(
        self,
        draft: CategoryDraft,
        existing: Sequence[Category] = (),
    ) -> ValidationResult:
        issues = []
        if any(c.name == draft.name and c.type == draft.type for c in existing):
            issues.append(ValidationIssue(
                field="name",
                issue_type="duplicate",
                message=f"{draft.type.value.capitalize()} category '{draft.name}' already exists",
                severity="warning",
            ))
        return _result(issues)

    def _check_amount(
        self,
        amount: Decimal,
        type: TransactionType,
    ) -> list[ValidationIssue]:
        issues = []
        if amount == 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="zero_amount",
                message="Amount cannot be zero",
                severity="error",
            ))
        elif (type == TransactionType.INCOME) != (amount > 0):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="sign_mismatch",
                message=(
                    f"A {type.value} is usually "
                    f"{'positive' if type == TransactionType.INCOME else 'negative'}"
                ),
                severity="warning",
            ))
        return issues

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """Plain-language summary of a validation result."""
        if result.is_valid and not result.warnings:
            return "All checks passed."

        lines = []
        errors = [i for i in result.issues if i.severity == "error"]
        if errors:
            lines.append("Please fix the following:")
            lines.extend(f"  - {issue.message}" for issue in errors)

        if result.warnings:
            lines.append("Please verify the following:")
            lines.extend(f"  - {issue.message}" for issue in result.warnings)

        return "\n".join(lines)


def _schema_issue(err: dict) -> ValidationIssue:
    loc = err.get("loc", ())
    field = ".".join(str(p) for p in loc) or "input"
    value = err.get("input")

    if (
        loc
        and loc[-1] in _NAME_FIELDS
        and (value is None or (isinstance(value, str) and not value.strip()))
    ):
        return ValidationIssue(
            field=field,
            issue_type="blank",
            message=f"{str(loc[-1]).capitalize()} cannot be blank",
            severity="error",
        )

    return ValidationIssue(
        field=field,
        issue_type=err.get("type", "invalid_value"),
        message=f"{field}: {err.get('msg')}",
        severity="error",
    )


def _result(issues: list[ValidationIssue]) -> ValidationResult:
    return ValidationResult(
        schema_valid=True,
        semantic_valid=not any(issue.severity == "error" for issue in issues),
        issues=issues,
    )
