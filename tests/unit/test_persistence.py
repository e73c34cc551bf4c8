"""Unit tests for persistence services (call logs, wallets and usage)."""
import pytest

from voicecall.core.errors import PersistenceError
from voicecall.db.models import Base
from voicecall.services.call_session.models import CallOutcome
from voicecall.services.persistence.calls import CallLogService
from voicecall.services.persistence.usage import DatabaseUsageRecorder
from voicecall.services.persistence.wallets import MinutesWalletService
from tests.fakes import make_record


class TestCallLogService:
    """Test call log service."""

    @pytest.mark.asyncio
    async def test_add_call_log(self, test_db):
        """Test writing a finished call."""
        service = CallLogService(test_db)

        call_log = await service.add(make_record(seconds=42))

        assert call_log.id is not None
        assert call_log.caller_id == "caller-1"
        assert call_log.duration_seconds == 42
        assert call_log.status == "completed"
        assert call_log.created_at is not None

    @pytest.mark.asyncio
    async def test_list_hides_disconnected(self, test_db):
        """Test that disconnected calls are filtered out by default."""
        service = CallLogService(test_db)
        await service.add(make_record(outcome=CallOutcome.COMPLETED))
        await service.add(make_record(outcome=CallOutcome.DISCONNECTED))
        await service.add(make_record(outcome=CallOutcome.DURATION_EXCEEDED))

        visible = await service.list_for_caller("caller-1")
        everything = await service.list_for_caller("caller-1", include_disconnected=True)

        assert sorted(log.status for log in visible) == ["completed", "duration_exceeded"]
        assert len(everything) == 3

    @pytest.mark.asyncio
    async def test_list_newest_first_and_per_caller(self, test_db):
        """Test ordering and caller isolation."""
        service = CallLogService(test_db)
        first = await service.add(make_record(seconds=1))
        second = await service.add(make_record(seconds=2))
        await service.add(make_record(caller_id="someone-else"))

        logs = await service.list_for_caller("caller-1")

        assert [log.id for log in logs] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_list_limit(self, test_db):
        """Test that the result size is capped."""
        service = CallLogService(test_db)
        for seconds in range(5):
            await service.add(make_record(seconds=seconds))

        logs = await service.list_for_caller("caller-1", limit=2)

        assert len(logs) == 2


class TestMinutesWalletService:
    """Test minutes wallet service."""

    @pytest.mark.asyncio
    async def test_initialize_default_balance(self, test_db):
        """Test that a new wallet starts with seven minutes."""
        service = MinutesWalletService(test_db)

        wallet = await service.initialize("caller-1")

        assert wallet.seconds == 420
        assert wallet.last_updated is not None

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, test_db):
        """Test that initializing an existing wallet keeps its balance."""
        service = MinutesWalletService(test_db)
        await service.initialize("caller-1", seconds=100)

        wallet = await service.initialize("caller-1")

        assert wallet.seconds == 100

    @pytest.mark.asyncio
    async def test_get_missing_wallet(self, test_db):
        """Test that an unknown caller has no wallet."""
        service = MinutesWalletService(test_db)

        assert await service.get("nobody") is None

    @pytest.mark.asyncio
    async def test_decrement(self, test_db):
        """Test subtracting used seconds."""
        service = MinutesWalletService(test_db)
        await service.initialize("caller-1", seconds=420)

        wallet = await service.decrement("caller-1", 20)

        assert wallet.seconds == 400

    @pytest.mark.asyncio
    async def test_decrement_floors_at_zero(self, test_db):
        """Test that the balance never goes negative."""
        service = MinutesWalletService(test_db)
        await service.initialize("caller-1", seconds=5)

        wallet = await service.decrement("caller-1", 30)

        assert wallet.seconds == 0

    @pytest.mark.asyncio
    async def test_decrement_missing_wallet(self, test_db):
        """Test that charging an unknown caller fails."""
        service = MinutesWalletService(test_db)

        with pytest.raises(PersistenceError):
            await service.decrement("nobody", 10)


class TestDatabaseUsageRecorder:
    """Test the database-backed usage recorder."""

    @pytest.mark.asyncio
    async def test_record_returns_id(self, usage_recorder, session_factory):
        """Test that a record is stored in its own session."""
        record_id = await usage_recorder.record(make_record(seconds=12))

        async with session_factory() as db:
            logs = await CallLogService(db).list_for_caller("caller-1")
        assert [log.id for log in logs] == [record_id]

    @pytest.mark.asyncio
    async def test_decrement_and_balance(self, usage_recorder, wallet_factory):
        """Test charging and reading the remaining balance."""
        await wallet_factory("caller-1", 420)

        remaining = await usage_recorder.decrement("caller-1", 15)

        assert remaining == 405
        assert await usage_recorder.get_balance("caller-1") == 405

    @pytest.mark.asyncio
    async def test_balance_without_wallet(self, usage_recorder):
        """Test that an unknown caller has no balance."""
        assert await usage_recorder.get_balance("nobody") is None

    @pytest.mark.asyncio
    async def test_database_errors_are_wrapped(self, test_db_engine, session_factory):
        """Test that SQLAlchemy failures surface as PersistenceError."""
        recorder = DatabaseUsageRecorder(session_factory)
        async with test_db_engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

        with pytest.raises(PersistenceError):
            await recorder.record(make_record())
        with pytest.raises(PersistenceError):
            await recorder.get_balance("caller-1")
