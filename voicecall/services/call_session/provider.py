"""Server-side call creation against the voice provider."""
import logging
from typing import Any, Dict, Optional

from voicecall.core.config import settings
from voicecall.core.errors import NetworkError, ServerConfigError
from voicecall.services.call_session.models import CallConfig
from voicecall.services.http.retrying import RetryingHttpClient

logger = logging.getLogger(__name__)


async def create_provider_call(
    http_client: RetryingHttpClient,
    config: CallConfig,
    api_key: Optional[str] = None,
    api_url: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Provision a call with the provider using the service credential.

    Returns:
        The provider's JSON response (includes joinUrl)

    Raises:
        ServerConfigError: If no provider API key is configured
        NetworkError: If the provider could not be reached after retries
    """
    api_key = api_key if api_key is not None else settings.ultravox_api_key
    api_url = api_url or settings.ultravox_api_url
    if not api_key:
        logger.error("[CREATE CALL] Missing ULTRAVOX_API_KEY environment variable")
        raise ServerConfigError("Server configuration error")

    logger.info("[CREATE CALL] Attempting to call Ultravox API...")
    response = await http_client.post_json(
        api_url,
        config.to_request_body(),
        headers={"X-API-Key": api_key},
    )
    logger.info(f"[CREATE CALL] Ultravox API response status: {response.status_code}")
    try:
        return response.json()
    except ValueError as e:
        raise NetworkError(f"Provider returned invalid JSON: {e}", last_status=response.status_code) from e
