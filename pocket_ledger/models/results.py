"""
Result Models

DESIGN DECISION: Errors cross the ledger boundary as VALUES, never as
exceptions. Every ledger operation returns an OperationResult so callers
decide how to present failures. Internally, storage code still raises;
the mirrors catch those exceptions and convert them here.
"""

from datetime import datetime
from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field


T = TypeVar("T")


class LedgerErrorKind(str, Enum):
    """Error taxonomy for ledger operations."""
    AUTH_REQUIRED = "auth_required"  # No current user. Nothing was sent remotely.
    FETCH_ERROR = "fetch_error"      # A read from the store failed
    WRITE_ERROR = "write_error"      # An insert/update/delete failed
    NOT_FOUND = "not_found"          # A related row is absent from the local mirror
    INVALID_INPUT = "invalid_input"  # Rejected before dispatch


class LedgerError(BaseModel):
    """A single failure, described for the caller."""

    kind: LedgerErrorKind
    message: str
    table: Optional[str] = None
    entity_id: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class OperationResult(BaseModel, Generic[T]):
    """
    Outcome of one ledger operation.

    `warnings` carries non-fatal problems (e.g. a dependent update that
    was skipped because the related row is not in the mirror).
    """

    success: bool
    data: Optional[T] = None
    error: Optional[LedgerError] = None
    warnings: list[LedgerError] = Field(default_factory=list)
    completed_at: datetime = Field(default_factory=datetime.utcnow)

    @classmethod
    def ok(cls, data: Optional[T] = None, warnings: Optional[list[LedgerError]] = None) -> "OperationResult[T]":
        return cls(success=True, data=data, warnings=warnings or [])

    @classmethod
    def fail(
        cls,
        kind: LedgerErrorKind,
        message: str,
        table: Optional[str] = None,
        entity_id: Optional[str] = None,
        warnings: Optional[list[LedgerError]] = None,
    ) -> "OperationResult[T]":
        return cls(
            success=False,
            error=LedgerError(kind=kind, message=message, table=table, entity_id=entity_id),
            warnings=warnings or [],
        )

    @property
    def error_kind(self) -> Optional[LedgerErrorKind]:
        return self.error.kind if self.error else None

    @property
    def error_message(self) -> Optional[str]:
        return self.error.message if self.error else None


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'sign_mismatch')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """
    Result of validating a draft or patch before dispatch.

    Stage 1: Schema validation (pydantic model validation)
    Stage 2: Semantic validation (checks against the current mirrors)
    """

    schema_valid: bool
    semantic_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.schema_valid and self.semantic_valid

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "warning"]

    def error_summary(self) -> str:
        return "; ".join(
            issue.message for issue in self.issues if issue.severity == "error"
        )
