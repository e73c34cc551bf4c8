"""Minutes wallet persistence service."""
from datetime import datetime
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from voicecall.core.config import settings
from voicecall.core.errors import PersistenceError
from voicecall.db.models import MinutesWallet


class MinutesWalletService:
    """Service for a caller's remaining talk time."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, caller_id: str) -> Optional[MinutesWallet]:
        """Get wallet by caller id."""
        return await self.db.get(MinutesWallet, caller_id)

    async def initialize(self, caller_id: str, seconds: Optional[int] = None) -> MinutesWallet:
        """Create a wallet with the starting balance or return the existing one."""
        existing = await self.get(caller_id)
        if existing:
            return existing

        wallet = MinutesWallet(
            caller_id=caller_id,
            seconds=settings.default_wallet_seconds if seconds is None else seconds,
            last_updated=datetime.utcnow(),
        )
        self.db.add(wallet)
        await self.db.commit()
        await self.db.refresh(wallet)
        return wallet

    async def decrement(self, caller_id: str, seconds_used: int) -> MinutesWallet:
        """
        Subtract used seconds from a wallet, never going below zero.

        Raises:
            PersistenceError: If the caller has no wallet
        """
        wallet = await self.get(caller_id)
        if not wallet:
            raise PersistenceError(f"Minutes wallet not found for caller {caller_id}")

        wallet.seconds = max(0, wallet.seconds - max(0, seconds_used))
        wallet.last_updated = datetime.utcnow()
        await self.db.commit()
        await self.db.refresh(wallet)
        return wallet
