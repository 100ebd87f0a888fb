"""
Ledger Session

DESIGN DECISION: All per-user state lives in ONE explicit object.

A LedgerSession owns the five mirrors for a single authenticated user.
It is built when a user signs in and torn down when they sign out or a
different user signs in. Nothing is keyed by an ambient "current user":
code that holds a mirror from a closed session gets AUTH_REQUIRED back
instead of reading or writing someone else's rows.

SessionManager listens to the auth provider and swaps sessions on every
identity change.
"""

from typing import TYPE_CHECKING, Callable, Optional

import structlog

from pocket_ledger.audit import AuditLogger
from pocket_ledger.auth import AuthProvider, AuthUser
from pocket_ledger.mirrors import (
    AccountMirror,
    BudgetCategoryMirror,
    CategoryRegistry,
    GiveTakeMirror,
    MirrorStore,
    TransactionMirror,
)
from pocket_ledger.models.audit import AuditEventBuilder
from pocket_ledger.models.ledger import LedgerTable
from pocket_ledger.models.results import OperationResult
from pocket_ledger.services.storage import TableStorageInterface

if TYPE_CHECKING:
    from pocket_ledger.orchestrator import LedgerAggregator


logger = structlog.get_logger(__name__)


class LedgerSession:
    """The mirrors of one signed-in user."""

    def __init__(
        self,
        storage: TableStorageInterface,
        user: AuthUser,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._user = user
        self._audit_logger = audit_logger
        self._closed = False

        self.accounts = AccountMirror(storage, user.id, audit_logger)
        self.transactions = TransactionMirror(storage, user.id, audit_logger)
        self.budget_categories = BudgetCategoryMirror(storage, user.id, audit_logger)
        self.give_take = GiveTakeMirror(storage, user.id, audit_logger)
        self.categories = CategoryRegistry(storage, user.id, audit_logger)

    @property
    def user(self) -> AuthUser:
        return self._user

    @property
    def user_id(self) -> str:
        return self._user.id

    @property
    def is_open(self) -> bool:
        return not self._closed

    @property
    def mirrors(self) -> dict[LedgerTable, MirrorStore]:
        return {
            LedgerTable.ACCOUNTS: self.accounts,
            LedgerTable.TRANSACTIONS: self.transactions,
            LedgerTable.BUDGET_CATEGORIES: self.budget_categories,
            LedgerTable.GIVE_TAKE: self.give_take,
            LedgerTable.CATEGORIES: self.categories,
        }

    async def start(self) -> None:
        if self._audit_logger:
            await self._audit_logger.log(
                AuditEventBuilder.session_started(self._user.id, self._user.email)
            )

    async def load_all(self) -> dict[LedgerTable, OperationResult]:
        """
        Load every mirror, one after the other.

        A failed table does not stop the others from loading.
        """
        results = {}
        for table, mirror in self.mirrors.items():
            results[table] = await mirror.load()

        failed = [t.value for t, r in results.items() if not r.success]
        if failed:
            logger.warning("session_load_incomplete", user_id=self._user.id, failed_tables=failed)
        return results

    async def close(self) -> None:
        """Drop every mirror's rows and unbind it from the user."""
        if self._closed:
            return
        self._closed = True
        for mirror in self.mirrors.values():
            mirror.bind(None)
        if self._audit_logger:
            await self._audit_logger.log(AuditEventBuilder.session_ended(self._user.id))


class SessionManager:
    """
    Keeps exactly one LedgerSession per signed-in user.

    The aggregator is rebuilt alongside the session, so callers should
    always go through `manager.aggregator` rather than keeping their own
    reference across sign-ins.
    """

    def __init__(
        self,
        auth: AuthProvider,
        storage: TableStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        aggregator_factory: Optional[Callable[[LedgerSession], "LedgerAggregator"]] = None,
    ):
        self._auth = auth
        self._storage = storage
        self._audit_logger = audit_logger
        self._aggregator_factory = aggregator_factory
        self._session: Optional[LedgerSession] = None
        self._aggregator: Optional["LedgerAggregator"] = None
        self._unsubscribe = auth.subscribe(self.handle_user_change)

    @property
    def session(self) -> Optional[LedgerSession]:
        return self._session

    @property
    def aggregator(self) -> Optional["LedgerAggregator"]:
        return self._aggregator

    async def start(self) -> Optional[LedgerSession]:
        """Open a session for whoever is already signed in."""
        await self.handle_user_change(self._auth.current_user)
        return self._session

    async def handle_user_change(self, user: Optional[AuthUser]) -> None:
        if self._session and user and self._session.user_id == user.id:
            return

        if self._session:
            await self._session.close()
            self._session = None
            self._aggregator = None

        if user is None:
            return

        session = LedgerSession(self._storage, user, self._audit_logger)
        self._session = session
        self._aggregator = self._build_aggregator(session)
        await session.start()
        await session.load_all()

    async def shutdown(self) -> None:
        self._unsubscribe()
        if self._session:
            await self._session.close()
        self._session = None
        self._aggregator = None

    def _build_aggregator(self, session: LedgerSession) -> "LedgerAggregator":
        if self._aggregator_factory:
            return self._aggregator_factory(session)

        from pocket_ledger.orchestrator import LedgerAggregator
        return LedgerAggregator(session, audit_logger=self._audit_logger)
