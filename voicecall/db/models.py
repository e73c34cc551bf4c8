"""Database models."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class CallLog(Base):
    """Finished call record."""

    __tablename__ = "call_logs"

    id = Column(Integer, primary_key=True, index=True)
    caller_id = Column(String, index=True, nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    duration_seconds = Column(Integer, nullable=False)
    status = Column(String, nullable=False)  # completed, disconnected, error, duration_exceeded
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class MinutesWallet(Base):
    """Prepaid talk-time balance for a caller."""

    __tablename__ = "minutes_wallets"

    caller_id = Column(String, primary_key=True, index=True)
    seconds = Column(Integer, nullable=False)
    last_updated = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )
