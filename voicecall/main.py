"""Main FastAPI application."""
from fastapi import FastAPI
from contextlib import asynccontextmanager

from voicecall.core.logging import setup_logging
from voicecall.db.database import init_db
from voicecall.api import health, calls, wallets


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    setup_logging()
    await init_db()
    yield


app = FastAPI(
    title="Voice Call Service",
    description="Call provisioning, call history and talk-time wallets for the voice agent demo",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router, tags=["health"])
app.include_router(calls.router, tags=["calls"])
app.include_router(wallets.router, tags=["wallets"])


@app.get("/")
async def root():
    """Service information."""
    return {
        "message": "Voice Call Service API",
        "version": "0.1.0",
    }
