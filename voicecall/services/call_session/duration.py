"""Maximum call duration handling."""
import asyncio
import logging
import re
from typing import Any, Awaitable, Callable, Optional

from voicecall.core.errors import ConfigError

logger = logging.getLogger(__name__)

DURATION_PATTERN = re.compile(r"(\d+)([hms])", re.ASCII)

_UNIT_MILLISECONDS = {
    "h": 60 * 60 * 1000,
    "m": 60 * 1000,
    "s": 1000,
}

ExpireCallback = Callable[[], Awaitable[Any]]


class TimerHandle:
    """A single armed countdown."""

    def __init__(self, delay_ms: int):
        self.delay_ms = delay_ms
        self.fired = False
        self.cancelled = False
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        """True until the timer fires or is cancelled."""
        return not (self.fired or self.cancelled)


class DurationPolicy:
    """Parses duration budgets and owns at most one armed countdown."""

    def __init__(self, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self._sleep = sleep
        self._handle: Optional[TimerHandle] = None

    @staticmethod
    def parse(duration: str) -> int:
        """
        Convert a duration string to milliseconds.

        Args:
            duration: "<N>h", "<N>m" or "<N>s"

        Returns:
            Milliseconds

        Raises:
            ConfigError: If the string is not in one of the accepted forms
        """
        match = DURATION_PATTERN.fullmatch(duration) if isinstance(duration, str) else None
        if not match:
            raise ConfigError(
                f'Invalid duration format {duration!r}. Use format like "1h", "30m", or "1800s"'
            )
        value, unit = match.groups()
        return int(value) * _UNIT_MILLISECONDS[unit]

    @property
    def armed(self) -> bool:
        return self._handle is not None and self._handle.active

    def arm(self, delay_ms: int, on_expire: ExpireCallback) -> TimerHandle:
        """
        Start a countdown that awaits on_expire when it runs out.

        Any timer armed earlier is disarmed first.
        """
        if self._handle is not None:
            self.disarm(self._handle)

        handle = TimerHandle(delay_ms)
        handle._task = asyncio.create_task(self._run(handle, on_expire))
        self._handle = handle
        logger.debug(f"[DURATION] Timer armed for {delay_ms}ms")
        return handle

    def disarm(self, handle: Optional[TimerHandle] = None) -> None:
        """
        Cancel a timer (the current one if no handle is given).

        Fired or already cancelled handles are left alone.
        """
        handle = handle or self._handle
        if handle is None:
            return

        if handle.active:
            handle.cancelled = True
            if handle._task is not None:
                handle._task.cancel()
            logger.debug("[DURATION] Timer disarmed")

        if self._handle is handle:
            self._handle = None

    async def _run(self, handle: TimerHandle, on_expire: ExpireCallback) -> None:
        await self._sleep(handle.delay_ms / 1000)
        if not handle.active:
            return

        handle.fired = True
        if self._handle is handle:
            self._handle = None

        logger.info(f"[DURATION] Timer expired after {handle.delay_ms}ms")
        try:
            await on_expire()
        except Exception as e:
            logger.error(
                f"[DURATION] Expiry callback failed: {type(e).__name__}: {e}",
                exc_info=True,
            )
