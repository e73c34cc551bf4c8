"""Session handle owning one live voice transport."""
import logging
from typing import Any, Callable, List, Optional, Tuple

from voicecall.core.errors import TransportError
from voicecall.services.call_session.models import Role, Transcript, TransportStatus
from voicecall.services.call_session.transport import (
    EXPERIMENTAL_MESSAGE_EVENT,
    STATUS_EVENT,
    TRANSCRIPT_EVENT,
    TransportListener,
    VoiceTransport,
)

logger = logging.getLogger(__name__)


class CallCallbacks:
    """UI callbacks for a call."""

    def __init__(
        self,
        on_status_change: Optional[Callable[[Optional[TransportStatus]], None]] = None,
        on_transcript_change: Optional[Callable[[List[Transcript]], None]] = None,
        on_diagnostic: Optional[Callable[[Any], None]] = None,
    ):
        self.on_status_change = on_status_change
        self.on_transcript_change = on_transcript_change
        self.on_diagnostic = on_diagnostic


class SessionHandle:
    """
    Wraps a voice transport and normalizes its status, transcript and
    diagnostic events into CallCallbacks.

    Every listener registered on the transport is kept in a subscription
    list that close() drains before leaving the call.
    """

    def __init__(self, transport: VoiceTransport, callbacks: CallCallbacks):
        self.callbacks = callbacks
        self._transport: Optional[VoiceTransport] = transport
        self._subscriptions: List[Tuple[str, TransportListener]] = []

    @property
    def is_open(self) -> bool:
        return self._transport is not None

    @property
    def status(self) -> Optional[TransportStatus]:
        return self._transport.status if self._transport else None

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    async def open(self, join_url: str) -> None:
        """
        Subscribe to the transport and join the call.

        Raises:
            TransportError: If the handle was closed or the join fails
        """
        transport = self._transport
        if transport is None:
            raise TransportError("Session handle is closed")

        self._subscribe(transport, STATUS_EVENT, self._on_status)
        self._subscribe(transport, TRANSCRIPT_EVENT, self._on_transcript)
        self._subscribe(transport, EXPERIMENTAL_MESSAGE_EVENT, self._on_diagnostic)

        logger.info(f"[SESSION] Joining call: {join_url}")
        try:
            await transport.join_call(join_url)
        except TransportError:
            raise
        except Exception as e:
            raise TransportError(f"Failed to join call: {type(e).__name__}: {e}") from e
        logger.info("[SESSION] Call joined successfully")

    async def close(self) -> None:
        """
        Unsubscribe every listener and leave the call.

        Safe to call repeatedly and before open() finished.
        """
        transport, self._transport = self._transport, None
        if transport is None:
            return

        for event, listener in self._subscriptions:
            transport.remove_event_listener(event, listener)
        self._subscriptions.clear()

        logger.info("[SESSION] Leaving call...")
        try:
            await transport.leave_call()
        except TransportError:
            raise
        except Exception as e:
            raise TransportError(f"Failed to leave call: {type(e).__name__}: {e}") from e

    def toggle_mute(self, role: Role) -> None:
        """Flip the microphone (user) or speaker (agent) mute flag."""
        transport = self._transport
        if transport is None:
            logger.warning("[SESSION] Cannot toggle mute: No active session")
            return

        if role == Role.USER:
            if transport.is_mic_muted:
                transport.unmute_mic()
            else:
                transport.mute_mic()
        elif transport.is_speaker_muted:
            transport.unmute_speaker()
        else:
            transport.mute_speaker()

    def _subscribe(self, transport: VoiceTransport, event: str, listener: TransportListener) -> None:
        transport.add_event_listener(event, listener)
        self._subscriptions.append((event, listener))

    def _on_status(self, status: TransportStatus) -> None:
        logger.debug(f"[SESSION] Status event: {status}")
        if self.callbacks.on_status_change:
            self.callbacks.on_status_change(status)

    def _on_transcript(self, transcripts: List[Transcript]) -> None:
        if self.callbacks.on_transcript_change:
            self.callbacks.on_transcript_change(list(transcripts))

    def _on_diagnostic(self, message: Any) -> None:
        if self.callbacks.on_diagnostic:
            self.callbacks.on_diagnostic(message)
