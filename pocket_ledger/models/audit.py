"""
Audit Models for Pocket Ledger

Every significant ledger action is logged for audit purposes.
This provides:
1. Traceability of every remote write
2. Debugging information when a multi-step update goes wrong
3. A record of cached-total changes (balances, budget spent), which
   is the only way to explain drift after the fact

DESIGN DECISION: The audit trail is append-only. Events are never edited
or removed, even when the ledger rows they describe are deleted.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Session lifecycle
    SESSION_STARTED = "session_started"
    SESSION_ENDED = "session_ended"

    # Reads
    MIRROR_LOADED = "mirror_loaded"
    FETCH_FAILED = "fetch_failed"

    # Writes
    ROW_INSERTED = "row_inserted"
    ROW_UPDATED = "row_updated"
    ROW_DELETED = "row_deleted"
    WRITE_FAILED = "write_failed"
    VALIDATION_FAILED = "validation_failed"

    # Cached totals
    BALANCE_UPDATED = "balance_updated"
    BUDGET_SPENT_UPDATED = "budget_spent_updated"

    # Cross-entity synchronization
    SYNC_STEP_SKIPPED = "sync_step_skipped"
    SYNC_STEP_FAILED = "sync_step_failed"
    ROLLBACK_APPLIED = "rollback_applied"
    ROLLBACK_FAILED = "rollback_failed"

    # Give/take
    RECORD_SETTLED = "record_settled"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


class AuditEvent(BaseModel):
    """
    A single audit event.

    One entry of the ledger audit trail.
    Written for every remote write and every change to a cached total.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Who and what
    user_id: Optional[str] = Field(
        default=None,
        description="Authenticated user the event belongs to"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Table the event relates to (e.g., 'accounts', 'transactions')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Row id the event relates to"
    )

    # Correlation - for tracking the steps of one user action
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID shared by all events of one user action"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Flatten for a structlog call.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        One audit worksheet row.

        Columns follow AUDIT_COLUMNS.
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.user_id or "",
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Factories for the events the ledger emits.

    Usage:
        event = AuditEventBuilder.row_inserted("transactions", row_id, user_id)
        event = AuditEventBuilder.balance_updated(account_id, old, new, user_id)
    """

    @staticmethod
    def session_started(user_id: str, email: Optional[str] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_STARTED,
            user_id=user_id,
            description="Ledger session started",
            details={"email": email} if email else {},
        )

    @staticmethod
    def session_ended(user_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_ENDED,
            user_id=user_id,
            description="Ledger session ended",
        )

    @staticmethod
    def mirror_loaded(table: str, user_id: str, row_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MIRROR_LOADED,
            severity=AuditSeverity.DEBUG,
            user_id=user_id,
            entity_type=table,
            description=f"Loaded {row_count} {table} rows",
            details={"row_count": row_count},
        )

    @staticmethod
    def fetch_failed(table: str, user_id: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FETCH_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            entity_type=table,
            description=f"Failed to fetch {table}",
            error_message=error_message,
        )

    @staticmethod
    def row_inserted(
        table: str,
        row_id: str,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ROW_INSERTED,
            user_id=user_id,
            entity_type=table,
            entity_id=row_id,
            correlation_id=correlation_id,
            description=f"Inserted into {table}",
            is_user_action=True,
        )

    @staticmethod
    def row_updated(
        table: str,
        row_id: str,
        fields: list[str],
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ROW_UPDATED,
            user_id=user_id,
            entity_type=table,
            entity_id=row_id,
            correlation_id=correlation_id,
            description=f"Updated {table}: {', '.join(fields)}",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def row_deleted(
        table: str,
        row_id: str,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ROW_DELETED,
            user_id=user_id,
            entity_type=table,
            entity_id=row_id,
            correlation_id=correlation_id,
            description=f"Deleted from {table}",
            is_user_action=True,
        )

    @staticmethod
    def write_failed(
        table: str,
        operation: str,
        error_message: str,
        user_id: Optional[str],
        row_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WRITE_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            entity_type=table,
            entity_id=row_id,
            correlation_id=correlation_id,
            description=f"Failed to {operation} {table}",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def validation_failed(
        table: str,
        issues: list[dict],
        user_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type=table,
            correlation_id=correlation_id,
            description=f"Validation failed with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def balance_updated(
        account_id: str,
        old_balance: Decimal,
        new_balance: Decimal,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_UPDATED,
            user_id=user_id,
            entity_type="accounts",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Balance changed from {old_balance} to {new_balance}",
            details={
                "old_balance": str(old_balance),
                "new_balance": str(new_balance),
            },
        )

    @staticmethod
    def budget_spent_updated(
        category_id: str,
        name: str,
        old_spent: Decimal,
        new_spent: Decimal,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_SPENT_UPDATED,
            user_id=user_id,
            entity_type="budget_categories",
            entity_id=category_id,
            correlation_id=correlation_id,
            description=f"Spent on '{name}' changed from {old_spent} to {new_spent}",
            details={
                "name": name,
                "old_spent": str(old_spent),
                "new_spent": str(new_spent),
            },
        )

    @staticmethod
    def sync_step_skipped(
        step: str,
        reason: str,
        transaction_id: str,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_STEP_SKIPPED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="transactions",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Skipped {step}: {reason}",
            details={"step": step},
        )

    @staticmethod
    def sync_step_failed(
        step: str,
        error_message: str,
        transaction_id: str,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_STEP_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            entity_type="transactions",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Dependent update failed: {step}",
            error_message=error_message,
            details={"step": step},
        )

    @staticmethod
    def rollback_applied(
        transaction_id: str,
        undone: list[str],
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ROLLBACK_APPLIED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="transactions",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Rolled back: {', '.join(undone)}",
            details={"undone": undone},
        )

    @staticmethod
    def rollback_failed(
        transaction_id: str,
        error_message: str,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ROLLBACK_FAILED,
            severity=AuditSeverity.CRITICAL,
            user_id=user_id,
            entity_type="transactions",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Rollback failed, ledger may be inconsistent",
            error_message=error_message,
        )

    @staticmethod
    def record_settled(
        record_id: str,
        counterparty: str,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_SETTLED,
            user_id=user_id,
            entity_type="give_take",
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Record with {counterparty} settled",
            is_user_action=True,
        )
