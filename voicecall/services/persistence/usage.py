"""Usage recording: call history plus wallet accounting."""
import logging
from abc import ABC, abstractmethod
from typing import Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from voicecall.core.errors import PersistenceError
from voicecall.services.call_session.models import CallRecord
from voicecall.services.persistence.calls import CallLogService
from voicecall.services.persistence.wallets import MinutesWalletService

logger = logging.getLogger(__name__)


class UsageRecorder(ABC):
    """Persists finished calls and charges callers for them."""

    @abstractmethod
    async def record(self, record: CallRecord) -> int:
        """Write a finished call. Returns the stored record id."""
        pass

    @abstractmethod
    async def decrement(self, caller_id: str, seconds: int) -> int:
        """Charge used seconds, flooring at zero. Returns the remaining balance."""
        pass

    @abstractmethod
    async def get_balance(self, caller_id: str) -> Optional[int]:
        """Remaining seconds for a caller, or None if they have no wallet."""
        pass


class DatabaseUsageRecorder(UsageRecorder):
    """
    UsageRecorder backed by the SQL database.

    Each operation runs in its own session because a call outlives
    the request that started it.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def record(self, record: CallRecord) -> int:
        try:
            async with self.session_factory() as db:
                call_log = await CallLogService(db).add(record)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to save call log: {e}") from e
        logger.info(
            f"[USAGE] Call log saved - id: {call_log.id}, caller: {record.caller_id}, "
            f"duration: {record.duration_seconds}s, outcome: {record.outcome.value}"
        )
        return call_log.id

    async def decrement(self, caller_id: str, seconds: int) -> int:
        try:
            async with self.session_factory() as db:
                wallet = await MinutesWalletService(db).decrement(caller_id, seconds)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to update minutes wallet: {e}") from e
        logger.info(
            f"[USAGE] Minutes wallet updated - caller: {caller_id}, "
            f"used: {seconds}s, remaining: {wallet.seconds}s"
        )
        return wallet.seconds

    async def get_balance(self, caller_id: str) -> Optional[int]:
        try:
            async with self.session_factory() as db:
                wallet = await MinutesWalletService(db).get(caller_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read minutes wallet: {e}") from e
        return wallet.seconds if wallet else None
