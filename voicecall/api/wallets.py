"""Minutes wallet endpoints."""
import logging
from fastapi import APIRouter, Depends, Request, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel

from voicecall.db.database import get_db
from voicecall.services.persistence.wallets import MinutesWalletService


router = APIRouter()
logger = logging.getLogger(__name__)


class WalletResponse(BaseModel):
    """Minutes wallet response model."""

    caller_id: str
    seconds: int
    last_updated: str


@router.get("/api/wallets/{caller_id}", response_model=WalletResponse)
async def get_wallet(
    caller_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Get a caller's wallet, creating it with the starting balance on first access."""
    logger.info(
        f"[WALLET] Request received - caller: {caller_id}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )

    try:
        wallet = await MinutesWalletService(db).initialize(caller_id)
    except Exception as e:
        logger.error(
            f"[WALLET] Error loading wallet - caller: {caller_id}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
        raise HTTPException(status_code=500, detail=f"Error loading wallet: {str(e)}")

    return WalletResponse(
        caller_id=wallet.caller_id,
        seconds=wallet.seconds,
        last_updated=wallet.last_updated.isoformat(),
    )
