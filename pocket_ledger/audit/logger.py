"""
Audit Logger

DESIGN DECISION: Every remote write and every change to a cached total
is logged. This provides:
1. Complete traceability
2. Debugging capability for partial multi-step failures
3. A way to explain balance or budget drift after the fact

The audit logger:
- Is async, like the storage it writes to
- Never raises: a failed persist is logged locally and reported as False
- Supports correlation IDs to trace the steps of one user action
"""

import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from pocket_ledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from pocket_ledger.services.storage import AuditStorageInterface


# JSON lines through the stdlib logging tree
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(log_level: str = "INFO") -> None:
    """Route structlog output through the stdlib root logger at `log_level`."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, log_level.upper()))
    logging.getLogger().setLevel(log_level.upper())


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage, when configured (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("pocket_ledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Echo the event to the local log, then persist it when storage is set.

        Returns False only when a configured storage did not take the event.
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                stored = await self._storage.append_event(event)
            except Exception as e:
                stored = False
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
            if not stored:
                self._logger.warning("audit_event_not_persisted", event_id=str(event.event_id))
            return stored

        return True

    async def log_fetch_failed(self, table: str, user_id: str, error_message: str) -> None:
        await self.log(AuditEventBuilder.fetch_failed(table, user_id, error_message))

    async def log_write_failed(
        self,
        table: str,
        operation: str,
        error_message: str,
        user_id: Optional[str],
        row_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.write_failed(
            table=table,
            operation=operation,
            error_message=error_message,
            user_id=user_id,
            row_id=row_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_balance_updated(
        self,
        account_id: str,
        old_balance: Decimal,
        new_balance: Decimal,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.balance_updated(
            account_id=account_id,
            old_balance=old_balance,
            new_balance=new_balance,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_budget_spent_updated(
        self,
        category_id: str,
        name: str,
        old_spent: Decimal,
        new_spent: Decimal,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.budget_spent_updated(
            category_id=category_id,
            name=name,
            old_spent=old_spent,
            new_spent=new_spent,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_sync_step_skipped(
        self,
        step: str,
        reason: str,
        transaction_id: str,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.sync_step_skipped(
            step=step,
            reason=reason,
            transaction_id=transaction_id,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_sync_step_failed(
        self,
        step: str,
        error_message: str,
        transaction_id: str,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.sync_step_failed(
            step=step,
            error_message=error_message,
            transaction_id=transaction_id,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., adding a transaction).
    Pass it through all subsequent operations.
    """
    return uuid4()
