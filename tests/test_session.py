"""Tests for the auth collaborator, sessions and the session manager."""

import pytest

from pocket_ledger.auth import InMemoryAuthProvider
from pocket_ledger.models.audit import AuditEventType
from pocket_ledger.models.ledger import AccountDraft, AccountType, LedgerTable
from pocket_ledger.models.results import LedgerErrorKind
from pocket_ledger.orchestrator import LedgerAggregator, create_ledger_components
from pocket_ledger.session import LedgerSession, SessionManager


class TestInMemoryAuthProvider:
    @pytest.mark.asyncio
    async def test_sign_up_signs_in(self):
        auth = InMemoryAuthProvider()
        result = await auth.sign_up("Ana@Example.com ", "secret1", full_name="Ana")
        assert result.success
        assert result.data.email == "ana@example.com"
        assert auth.current_user == result.data

    @pytest.mark.asyncio
    async def test_sign_in_and_out(self):
        auth = InMemoryAuthProvider()
        created = await auth.sign_up("ana@example.com", "secret1")
        await auth.sign_out()
        assert auth.current_user is None

        result = await auth.sign_in("ANA@example.com", "secret1")
        assert result.success
        assert result.data.id == created.data.id

    @pytest.mark.asyncio
    async def test_wrong_password(self):
        auth = InMemoryAuthProvider()
        await auth.sign_up("ana@example.com", "secret1")
        await auth.sign_out()
        result = await auth.sign_in("ana@example.com", "wrong-one")
        assert result.error_kind == LedgerErrorKind.AUTH_REQUIRED
        assert result.error_message == "Invalid login credentials"
        assert auth.current_user is None

    @pytest.mark.asyncio
    async def test_sign_up_rejections(self):
        auth = InMemoryAuthProvider()
        await auth.sign_up("ana@example.com", "secret1")

        duplicate = await auth.sign_up("ana@example.com", "secret2")
        short = await auth.sign_up("bo@example.com", "123")
        empty = await auth.sign_up("", "")

        assert duplicate.error_message == "User already registered"
        assert short.error_kind == LedgerErrorKind.INVALID_INPUT
        assert empty.error_message == "Please fill in all fields"

    @pytest.mark.asyncio
    async def test_listeners(self):
        """Listeners hear every identity change, sync or async."""
        auth = InMemoryAuthProvider()
        seen = []

        async def on_change(user):
            seen.append(user.email if user else None)

        unsubscribe = auth.subscribe(on_change)
        await auth.sign_up("ana@example.com", "secret1")
        await auth.sign_out()
        unsubscribe()
        await auth.sign_in("ana@example.com", "secret1")

        assert seen == ["ana@example.com", None]


class TestLedgerSession:
    @pytest.mark.asyncio
    async def test_load_all_reports_per_table(self, session, storage):
        storage.seed("accounts", name="Main", type="checking", balance="5")
        storage.fail("select", "give_take")

        results = await session.load_all()

        assert set(results) == set(LedgerTable)
        assert results[LedgerTable.ACCOUNTS].success
        assert results[LedgerTable.GIVE_TAKE].error_kind == LedgerErrorKind.FETCH_ERROR
        assert len(session.accounts) == 1

    @pytest.mark.asyncio
    async def test_close_unbinds_mirrors(self, session, storage, audit_storage):
        storage.seed("accounts", name="Main", type="checking")
        await session.start()
        await session.load_all()

        await session.close()
        await session.close()

        assert not session.is_open
        assert len(session.accounts) == 0
        result = await session.accounts.load()
        assert result.success and result.data == []
        ended = [e for e in audit_storage._events if e.event_type == AuditEventType.SESSION_ENDED]
        assert len(ended) == 1


class TestSessionManager:
    """Sessions follow the signed-in user."""

    @pytest.mark.asyncio
    async def test_swaps_sessions_on_identity_change(self, storage, audit_logger):
        auth = InMemoryAuthProvider()
        manager = SessionManager(auth, storage, audit_logger)
        assert manager.session is None

        ana = await auth.sign_up("ana@example.com", "secret1")
        first = manager.session
        assert isinstance(first, LedgerSession)
        assert first.user_id == ana.data.id
        assert isinstance(manager.aggregator, LedgerAggregator)

        bo = await auth.sign_up("bo@example.com", "secret2")
        second = manager.session
        assert second is not first
        assert second.user_id == bo.data.id
        assert not first.is_open

        stale = await first.accounts.insert(
            AccountDraft(name="Main", type=AccountType.CHECKING)
        )
        assert stale.error_kind == LedgerErrorKind.AUTH_REQUIRED

        await auth.sign_out()
        assert manager.session is None
        assert manager.aggregator is None
        assert not second.is_open

    @pytest.mark.asyncio
    async def test_stale_aggregator_requires_auth(self, storage, audit_logger):
        auth = InMemoryAuthProvider()
        manager = SessionManager(auth, storage, audit_logger)
        await auth.sign_up("ana@example.com", "secret1")
        old = manager.aggregator

        await auth.sign_out()
        result = await old.add_account({"name": "Main", "type": "checking"})

        assert result.error_kind == LedgerErrorKind.AUTH_REQUIRED
        assert storage.all_rows("accounts") == []

    @pytest.mark.asyncio
    async def test_users_never_see_each_other(self, storage, audit_logger):
        auth = InMemoryAuthProvider()
        manager = SessionManager(auth, storage, audit_logger)

        await auth.sign_up("ana@example.com", "secret1")
        await manager.aggregator.add_account({"name": "Ana's", "type": "savings", "balance": "10"})
        await auth.sign_up("bo@example.com", "secret2")

        assert len(manager.session.accounts) == 0
        assert manager.aggregator.total_balance() == 0

        await auth.sign_in("ana@example.com", "secret1")
        assert [a.name for a in manager.session.accounts] == ["Ana's"]

    @pytest.mark.asyncio
    async def test_same_user_keeps_session(self, storage):
        auth = InMemoryAuthProvider()
        manager = SessionManager(auth, storage)
        ana = await auth.sign_up("ana@example.com", "secret1")
        first = manager.session

        await manager.handle_user_change(ana.data)

        assert manager.session is first

    @pytest.mark.asyncio
    async def test_start_and_shutdown(self, storage):
        auth = InMemoryAuthProvider()
        await auth.sign_up("ana@example.com", "secret1")
        manager = SessionManager(auth, storage)
        assert manager.session is None

        session = await manager.start()
        assert session is manager.session

        await manager.shutdown()
        assert manager.session is None
        await auth.sign_out()
        await auth.sign_in("ana@example.com", "secret1")
        assert manager.session is None


class TestComponentFactory:
    @pytest.mark.asyncio
    async def test_in_memory_components(self):
        auth = InMemoryAuthProvider()
        manager, audit_logger, sheets_client = create_ledger_components(auth, use_storage=False)

        assert sheets_client is None
        assert audit_logger is not None

        await auth.sign_up("ana@example.com", "secret1")
        result = await manager.aggregator.add_account({"name": "Main", "type": "checking"})
        assert result.success
        assert manager.aggregator.sync_policy == "rollback"
