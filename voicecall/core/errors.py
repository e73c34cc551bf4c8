"""Error types raised by the call lifecycle."""
from typing import Optional


class CallError(Exception):
    """Base class for call lifecycle errors."""


class NetworkError(CallError):
    """Remote request failed after all retry attempts."""

    def __init__(
        self,
        message: str,
        attempts: int = 0,
        last_status: Optional[int] = None,
    ):
        super().__init__(message)
        self.attempts = attempts
        self.last_status = last_status


class ConfigError(CallError):
    """Call configuration is invalid (e.g. a malformed duration string)."""


class TransportError(CallError):
    """The voice transport failed to open or close."""


class PersistenceError(CallError):
    """Recording call usage or updating a wallet failed."""


class ServerConfigError(CallError):
    """The service is missing its provider credential."""


class InsufficientBalanceError(CallError):
    """The caller has no remaining seconds in their wallet."""

    def __init__(self, caller_id: str):
        super().__init__(f"No minutes remaining for caller {caller_id}")
        self.caller_id = caller_id
