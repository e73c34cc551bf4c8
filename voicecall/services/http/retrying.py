"""HTTP client with bounded exponential-backoff retry."""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx

from voicecall.core.config import settings
from voicecall.core.errors import NetworkError
from voicecall.services.notifications import NotificationSink, Severity

logger = logging.getLogger(__name__)


class RetryingHttpClient:
    """
    Wraps an httpx.AsyncClient and retries failed requests.

    A request fails when sending it raises or the response status is not 2xx.
    Between attempts the client waits 2**attempt seconds (1s, 2s, 4s, ...);
    there is no jitter and no wait after the final attempt.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        max_attempts: Optional[int] = None,
        notifier: Optional[NotificationSink] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient()
        self.max_attempts = max_attempts or settings.http_max_attempts
        self.notifier = notifier
        self._sleep = sleep

    async def request(
        self,
        method: str,
        url: str,
        max_attempts: Optional[int] = None,
        **options: Any,
    ) -> httpx.Response:
        """
        Send a request, retrying on failure.

        Args:
            method: HTTP method
            url: Target URL
            max_attempts: Overrides the client's default attempt count
            **options: Passed through to httpx (json, headers, ...)

        Returns:
            The first successful response

        Raises:
            NetworkError: If every attempt failed
        """
        attempts = max_attempts or self.max_attempts
        last_error: Optional[Exception] = None
        last_status: Optional[int] = None

        for attempt in range(attempts):
            try:
                response = await self.client.request(method, url, **options)
                if response.is_success:
                    return response
                last_status = response.status_code
                last_error = NetworkError(
                    f"HTTP error! status: {response.status_code}",
                    attempts=attempt + 1,
                    last_status=last_status,
                )
            except Exception as e:
                last_status = None
                last_error = e

            if attempt < attempts - 1:
                delay = 2 ** attempt
                message = f"Attempt {attempt + 1} failed, retrying in {delay}s..."
                logger.warning(f"[HTTP RETRY] {method} {url} - {message} ({last_error})")
                if self.notifier:
                    self.notifier.notify(message, Severity.WARNING)
                await self._sleep(delay)

        logger.error(f"[HTTP RETRY] {method} {url} failed after {attempts} attempts: {last_error}")
        raise NetworkError(
            f"Request to {url} failed after {attempts} attempts: {last_error}",
            attempts=attempts,
            last_status=last_status,
        ) from last_error

    async def post_json(self, url: str, body: Any, **options: Any) -> httpx.Response:
        """POST a JSON body with retry."""
        return await self.request("POST", url, json=body, **options)

    async def aclose(self) -> None:
        """Close the underlying client if this instance created it."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "RetryingHttpClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
