"""Call log persistence service."""
from typing import List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc

from voicecall.db.models import CallLog
from voicecall.services.call_session.models import CallOutcome, CallRecord


class CallLogService:
    """Service for persisting finished calls."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def add(self, record: CallRecord) -> CallLog:
        """Write a finished call."""
        call_log = CallLog(
            caller_id=record.caller_id,
            start_time=record.start_time,
            end_time=record.end_time,
            duration_seconds=record.duration_seconds,
            status=record.outcome.value,
        )
        self.db.add(call_log)
        await self.db.commit()
        await self.db.refresh(call_log)
        return call_log

    async def list_for_caller(
        self,
        caller_id: str,
        include_disconnected: bool = False,
        limit: int = 100,
    ) -> List[CallLog]:
        """Get a caller's calls, newest first."""
        query = select(CallLog).where(CallLog.caller_id == caller_id)
        if not include_disconnected:
            query = query.where(CallLog.status != CallOutcome.DISCONNECTED.value)
        result = await self.db.execute(
            query.order_by(desc(CallLog.created_at), desc(CallLog.id)).limit(limit)
        )
        return list(result.scalars().all())
