"""FastAPI dependencies."""
from typing import AsyncIterator

from voicecall.services.http.retrying import RetryingHttpClient


async def get_http_client() -> AsyncIterator[RetryingHttpClient]:
    """Get a retrying HTTP client for the duration of a request."""
    async with RetryingHttpClient() as client:
        yield client
