"""Test doubles for the call lifecycle."""
import asyncio
from datetime import datetime, timedelta
from typing import List, Optional

from voicecall.core.errors import TransportError
from voicecall.services.call_session.models import (
    CallOutcome,
    CallRecord,
    Role,
    Transcript,
    TransportStatus,
)
from voicecall.services.call_session.transport import (
    EXPERIMENTAL_MESSAGE_EVENT,
    TRANSCRIPT_EVENT,
    VoiceTransport,
)
from voicecall.services.notifications import NotificationSink

JOIN_URL = "wss://voice.test/calls/abc123"


class FakeVoiceTransport(VoiceTransport):
    """In-memory voice transport driven by the test."""

    def __init__(self, fail_join: bool = False, join_gate: Optional[asyncio.Event] = None):
        super().__init__(experimental_messages={"debug"})
        self.fail_join = fail_join
        self.join_gate = join_gate
        self.joined_urls: List[str] = []
        self.leave_count = 0

    async def join_call(self, join_url: str) -> None:
        self.joined_urls.append(join_url)
        self._set_status(TransportStatus.CONNECTING)
        if self.join_gate is not None:
            await self.join_gate.wait()
        if self.fail_join:
            self._set_status(TransportStatus.DISCONNECTED)
            raise TransportError("Failed to join call: connection refused")
        self._set_status(TransportStatus.IDLE)

    async def leave_call(self) -> None:
        self.leave_count += 1
        self._set_status(TransportStatus.DISCONNECTED)

    def report_status(self, status: TransportStatus) -> None:
        self._set_status(status)

    def report_transcript(self, text: str, speaker: Role = Role.AGENT) -> None:
        self.transcripts.append(
            Transcript(text=text, is_final=True, speaker=speaker, ordinal=len(self.transcripts))
        )
        self._dispatch(TRANSCRIPT_EVENT, self.transcripts)

    def report_debug(self, message: str) -> None:
        self._dispatch(EXPERIMENTAL_MESSAGE_EVENT, {"type": "debug", "message": message})


class FakeClock:
    """Controllable replacement for datetime.utcnow."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class ManualTimer:
    """Sleep replacement for DurationPolicy; the countdown ends when the test says so."""

    def __init__(self):
        self.delays: List[float] = []
        self._gate = asyncio.Event()

    async def sleep(self, delay: float) -> None:
        self.delays.append(delay)
        await self._gate.wait()

    def expire(self) -> None:
        self._gate.set()


class RecordingNotifier(NotificationSink):
    """Notification sink that remembers what it was told."""

    def __init__(self):
        self.messages = []

    def notify(self, message, severity=None):
        self.messages.append((message, severity))


async def no_sleep(delay: float) -> None:
    """Backoff sleep that returns immediately."""
    return None


def make_record(caller_id="caller-1", seconds=60, outcome=CallOutcome.COMPLETED):
    """Finished call starting at a fixed time."""
    start = datetime(2026, 1, 1, 12, 0, 0)
    return CallRecord(
        caller_id=caller_id,
        start_time=start,
        end_time=start + timedelta(seconds=seconds),
        duration_seconds=seconds,
        outcome=outcome,
    )
