"""
Mirror Store

An in-memory, per-user copy of one remote table.

DESIGN DECISION: Remote first, memory second. Every mutation is sent to
the store and the in-memory list changes only after the store accepts it.
There are no optimistic updates, so the mirror never shows a row the
store does not have.

Failures never raise out of a mirror. Storage exceptions are caught here
and returned as OperationResult values.
"""

from typing import Any, Generic, Iterator, Optional, TypeVar, Union
from uuid import UUID

import structlog
from pydantic import ValidationError

from pocket_ledger.audit import AuditLogger
from pocket_ledger.models.audit import AuditEventBuilder
from pocket_ledger.models.ledger import LedgerDraft, LedgerRow, LedgerTable
from pocket_ledger.models.results import LedgerError, LedgerErrorKind, OperationResult
from pocket_ledger.services.storage import (
    NotFoundError,
    OrderBy,
    StorageError,
    TableStorageInterface,
)


RowT = TypeVar("RowT", bound=LedgerRow)

logger = structlog.get_logger(__name__)


class MirrorStore(Generic[RowT]):
    """
    Base mirror for one table.

    Subclasses set the table, the row model, the load ordering and
    whether new rows go to the front (newest first) or the back.
    """

    table: LedgerTable
    row_model: type[RowT]
    order_by: tuple[OrderBy, ...] = (("created_at", False),)
    newest_first: bool = False

    def __init__(
        self,
        storage: TableStorageInterface,
        user_id: Optional[str] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._user_id = user_id
        self._audit_logger = audit_logger
        self._rows: list[RowT] = []
        self.last_error: Optional[LedgerError] = None

    # -------------------------------------------------------------------------
    # Read access
    # -------------------------------------------------------------------------

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def rows(self) -> list[RowT]:
        return list(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[RowT]:
        return iter(list(self._rows))

    def get(self, row_id: UUID) -> Optional[RowT]:
        for row in self._rows:
            if row.id == row_id:
                return row
        return None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def bind(self, user_id: Optional[str]) -> None:
        """Point the mirror at another user. Drops rows from the previous one."""
        if user_id != self._user_id:
            self._user_id = user_id
            self._rows = []
            self.last_error = None

    def clear(self) -> None:
        self._rows = []
        self.last_error = None

    async def load(self, user_id: Optional[str] = None) -> OperationResult[list[RowT]]:
        """
        Replace the in-memory list with the user's rows from the store.

        With no current user the list is emptied and the load succeeds.
        On failure the list is left empty. There is no retry.
        """
        if user_id is not None:
            self.bind(user_id)

        if self._user_id is None:
            self._rows = []
            return OperationResult.ok(data=[])

        requested = self._user_id
        try:
            raw_rows = await self._storage.select_rows(
                self.table.value, requested, self.order_by
            )
        except StorageError as e:
            if self._user_id != requested:
                return self._auth_required()
            self._rows = []
            self.last_error = LedgerError(
                kind=LedgerErrorKind.FETCH_ERROR,
                message=str(e),
                table=self.table.value,
            )
            if self._audit_logger:
                await self._audit_logger.log_fetch_failed(self.table.value, self._user_id, str(e))
            return OperationResult(success=False, error=self.last_error)

        rows = []
        for raw in raw_rows:
            try:
                rows.append(self.row_model.model_validate(raw))
            except ValidationError as e:
                logger.warning(
                    "malformed_row_skipped",
                    table=self.table.value,
                    row_id=raw.get("id"),
                    error=str(e),
                )

        if self._user_id != requested:
            # The mirror was rebound while the read was in flight.
            return self._auth_required()

        self._rows = rows
        self.last_error = None
        if self._audit_logger:
            await self._audit_logger.log(
                AuditEventBuilder.mirror_loaded(self.table.value, self._user_id, len(rows))
            )
        return OperationResult.ok(data=list(rows))

    # -------------------------------------------------------------------------
    # Mutations (remote first, then memory)
    # -------------------------------------------------------------------------

    def _auth_required(self) -> OperationResult:
        return OperationResult.fail(
            LedgerErrorKind.AUTH_REQUIRED,
            "User not authenticated",
            table=self.table.value,
        )

    def _invalid(self, error: Union[ValidationError, str]) -> OperationResult:
        message = error if isinstance(error, str) else _describe_validation_error(error)
        return OperationResult.fail(
            LedgerErrorKind.INVALID_INPUT,
            message,
            table=self.table.value,
        )

    async def _write_failed(
        self,
        operation: str,
        error: Exception,
        row_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult:
        if isinstance(error, NotFoundError):
            message = f"No {self.table.value} row {row_id} for the current user"
        else:
            message = str(error) or f"Failed to {operation} {self.table.value}"
        self.last_error = LedgerError(
            kind=LedgerErrorKind.WRITE_ERROR,
            message=message,
            table=self.table.value,
            entity_id=str(row_id) if row_id else None,
        )
        if self._audit_logger:
            await self._audit_logger.log_write_failed(
                table=self.table.value,
                operation=operation,
                error_message=message,
                user_id=self._user_id,
                row_id=str(row_id) if row_id else None,
                correlation_id=correlation_id,
            )
        return OperationResult(success=False, error=self.last_error)

    def _place(self, row: RowT) -> None:
        """Put a freshly inserted row in its place in the list."""
        if self.newest_first:
            self._rows.insert(0, row)
        else:
            self._rows.append(row)

    async def insert(
        self,
        draft: LedgerDraft,
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult[RowT]:
        """Persist a new row, then add it to the list."""
        if self._user_id is None:
            return self._auth_required()

        try:
            raw = await self._storage.insert_row(
                self.table.value, self._user_id, draft.to_fields()
            )
        except StorageError as e:
            return await self._write_failed("insert", e, correlation_id=correlation_id)

        try:
            row = self.row_model.model_validate(raw)
        except ValidationError as e:
            return await self._write_failed(
                "insert", StorageError(f"Store returned a malformed row: {e}"),
                correlation_id=correlation_id,
            )
        self._place(row)
        self.last_error = None
        if self._audit_logger:
            await self._audit_logger.log(
                AuditEventBuilder.row_inserted(
                    self.table.value, str(row.id), self._user_id, correlation_id
                )
            )
        return OperationResult.ok(data=row)

    async def _patch(
        self,
        row_id: UUID,
        fields: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult[RowT]:
        """Persist a partial update, then swap in the merged row the store returns."""
        if self._user_id is None:
            return self._auth_required()
        if not fields:
            return self._invalid("Nothing to update")

        try:
            raw = await self._storage.update_row(
                self.table.value, self._user_id, row_id, fields
            )
        except StorageError as e:
            return await self._write_failed("update", e, row_id, correlation_id)

        try:
            merged = self.row_model.model_validate(raw)
        except ValidationError as e:
            return await self._write_failed(
                "update", StorageError(f"Store returned a malformed row: {e}"),
                row_id, correlation_id,
            )
        self._rows = [merged if r.id == row_id else r for r in self._rows]
        self.last_error = None
        if self._audit_logger:
            await self._audit_logger.log(
                AuditEventBuilder.row_updated(
                    self.table.value,
                    str(row_id),
                    sorted(fields),
                    self._user_id,
                    correlation_id,
                )
            )
        return OperationResult.ok(data=merged)

    async def _remove(
        self,
        row_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> OperationResult:
        """Persist a delete, then drop the row from the list."""
        if self._user_id is None:
            return self._auth_required()

        try:
            await self._storage.delete_row(self.table.value, self._user_id, row_id)
        except StorageError as e:
            return await self._write_failed("delete", e, row_id, correlation_id)

        self._rows = [r for r in self._rows if r.id != row_id]
        self.last_error = None
        if self._audit_logger:
            await self._audit_logger.log(
                AuditEventBuilder.row_deleted(
                    self.table.value, str(row_id), self._user_id, correlation_id
                )
            )
        return OperationResult.ok()


def _describe_validation_error(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        location = ".".join(str(p) for p in err.get("loc", ())) or "input"
        parts.append(f"{location}: {err.get('msg')}")
    return "; ".join(parts)
