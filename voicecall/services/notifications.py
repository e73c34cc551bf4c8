"""User-facing notifications and UI event broadcasting."""
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

# Event names broadcast to the UI layer
CALL_ENDED = "callEnded"
WALLET_UPDATED = "minutesWalletUpdated"
ORDER_DETAILS_UPDATED = "orderDetailsUpdated"

EventListener = Callable[[Optional[Any]], None]


class Severity(str, Enum):
    """Notification severity."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class NotificationSink(ABC):
    """Surfaces status and errors to the UI layer (toast/log)."""

    @abstractmethod
    def notify(self, message: str, severity: Severity = Severity.INFO) -> None:
        """Deliver a notification. Must never block or raise."""
        pass


class LoggingNotificationSink(NotificationSink):
    """Notification sink that writes to the application log."""

    _LEVELS = {
        Severity.INFO: logging.INFO,
        Severity.WARNING: logging.WARNING,
        Severity.ERROR: logging.ERROR,
    }

    def notify(self, message: str, severity: Severity = Severity.INFO) -> None:
        try:
            logger.log(self._LEVELS.get(severity, logging.INFO), f"[NOTIFY] {message}")
        except Exception:
            # A broken log handler must not reach the caller
            pass


class EventBus:
    """Named-event broadcaster consumed by the UI layer."""

    def __init__(self):
        self._listeners: Dict[str, List[EventListener]] = {}

    def subscribe(self, event: str, listener: EventListener) -> Callable[[], None]:
        """
        Register a listener for an event.

        Returns:
            A callable that removes the listener again
        """
        self._listeners.setdefault(event, []).append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(event, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def emit(self, event: str, payload: Optional[Any] = None) -> None:
        """Call every listener of an event; listener failures are logged."""
        for listener in list(self._listeners.get(event, [])):
            try:
                listener(payload)
            except Exception as e:
                logger.error(
                    f"[EVENTS] Listener for '{event}' failed: {type(e).__name__}: {e}",
                    exc_info=True,
                )
