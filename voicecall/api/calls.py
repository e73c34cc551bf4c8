"""Call creation and call history endpoints."""
import logging
from typing import List
from fastapi import APIRouter, Depends, Request, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, ConfigDict

from voicecall.core.dependencies import get_http_client
from voicecall.core.errors import NetworkError, ServerConfigError
from voicecall.db.database import get_db
from voicecall.services.call_session.models import CallConfig
from voicecall.services.call_session.provider import create_provider_call
from voicecall.services.http.retrying import RetryingHttpClient
from voicecall.services.persistence.calls import CallLogService


router = APIRouter()
logger = logging.getLogger(__name__)


class CallLogResponse(BaseModel):
    """Call log response model."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    caller_id: str
    start_time: str
    end_time: str
    duration_seconds: int
    status: str
    created_at: str


@router.post("/api/calls")
async def create_call(
    request: Request,
    config: CallConfig,
    http_client: RetryingHttpClient = Depends(get_http_client),
):
    """
    Provision a voice call with the provider.

    The browser never sees the provider credential; it posts its call
    config here and gets back the provider response with the join URL.
    """
    logger.info(
        f"[CREATE CALL] Request received - model: {config.model}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )

    try:
        return await create_provider_call(http_client, config)
    except ServerConfigError:
        raise HTTPException(status_code=500, detail="Server configuration error")
    except NetworkError as e:
        logger.error(
            f"[CREATE CALL] Error calling Ultravox API - attempts: {e.attempts}, "
            f"last status: {e.last_status}, Error: {e}",
            exc_info=True,
        )
        raise HTTPException(status_code=500, detail=f"Error calling Ultravox API: {str(e)}")


@router.get("/api/calls/history/{caller_id}", response_model=List[CallLogResponse])
async def get_call_history(
    caller_id: str,
    request: Request,
    include_disconnected: bool = False,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
):
    """Get a caller's call logs, newest first."""
    logger.info(
        f"[CALL HISTORY] Request received - caller: {caller_id}, limit: {limit}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )

    try:
        calls = await CallLogService(db).list_for_caller(
            caller_id, include_disconnected=include_disconnected, limit=limit
        )
    except Exception as e:
        logger.error(
            f"[CALL HISTORY] Error fetching call history - caller: {caller_id}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
        raise HTTPException(status_code=500, detail=f"Error fetching call history: {str(e)}")

    logger.info(f"[CALL HISTORY] Found {len(calls)} calls for caller {caller_id}")
    return [
        CallLogResponse(
            id=call.id,
            caller_id=call.caller_id,
            start_time=call.start_time.isoformat(),
            end_time=call.end_time.isoformat(),
            duration_seconds=call.duration_seconds,
            status=call.status,
            created_at=call.created_at.isoformat() if call.created_at else "",
        )
        for call in calls
    ]
