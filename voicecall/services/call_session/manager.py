"""Call lifecycle manager."""
import asyncio
import logging
from datetime import datetime
from functools import partial
from typing import Callable, Dict, Optional, Set

from pydantic import ValidationError

from voicecall.core.config import settings
from voicecall.core.errors import InsufficientBalanceError, NetworkError, TransportError
from voicecall.services.call_session.client_tools import UPDATE_ORDER_TOOL, update_order_tool
from voicecall.services.call_session.duration import DurationPolicy, TimerHandle
from voicecall.services.call_session.handle import CallCallbacks, SessionHandle
from voicecall.services.call_session.models import (
    CallConfig,
    CallOutcome,
    CallRecord,
    JoinUrlResponse,
    Role,
    SessionState,
    TransportStatus,
)
from voicecall.services.call_session.transport import VoiceTransport, WebSocketVoiceTransport
from voicecall.services.http.retrying import RetryingHttpClient
from voicecall.services.notifications import (
    CALL_ENDED,
    WALLET_UPDATED,
    EventBus,
    LoggingNotificationSink,
    NotificationSink,
    Severity,
)
from voicecall.services.persistence.usage import UsageRecorder

logger = logging.getLogger(__name__)

# Experimental message classes requested from the provider
DEBUG_MESSAGES = {"debug"}


def default_transport_factory() -> VoiceTransport:
    return WebSocketVoiceTransport(experimental_messages=DEBUG_MESSAGES)


class CallLifecycleManager:
    """
    Owns the single live voice session of a client.

    States run Idle -> Starting -> Active -> Ending -> Idle. Every way a
    call can finish (hang-up, provider disconnect, duration exceeded,
    error) goes through end_call(), which records usage at most once and
    always releases the timer, the subscriptions and the transport.
    """

    def __init__(
        self,
        usage_recorder: UsageRecorder,
        notifier: Optional[NotificationSink] = None,
        http_client: Optional[RetryingHttpClient] = None,
        transport_factory: Callable[[], VoiceTransport] = default_transport_factory,
        events: Optional[EventBus] = None,
        duration_policy: Optional[DurationPolicy] = None,
        create_call_url: Optional[str] = None,
        request_headers: Optional[Dict[str, str]] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.usage_recorder = usage_recorder
        self.notifier = notifier or LoggingNotificationSink()
        self.http_client = http_client or RetryingHttpClient(notifier=self.notifier)
        self.transport_factory = transport_factory
        self.events = events or EventBus()
        self.duration_policy = duration_policy or DurationPolicy()
        self.create_call_url = create_call_url or settings.create_call_url
        self.request_headers = request_headers or {}
        self._clock = clock

        self._state = SessionState.IDLE
        self._handle: Optional[SessionHandle] = None
        self._timer: Optional[TimerHandle] = None
        self._call_start_time: Optional[datetime] = None
        self._caller_id: Optional[str] = None
        # Bumped by every start/end so stale timers and superseded starts can tell
        self._generation = 0
        self._teardown_done: Optional[asyncio.Event] = None
        self._background_tasks: Set[asyncio.Task] = set()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def caller_id(self) -> Optional[str]:
        return self._caller_id

    @property
    def call_start_time(self) -> Optional[datetime]:
        return self._call_start_time

    @property
    def has_session(self) -> bool:
        return self._handle is not None

    async def start_call_for_caller(
        self,
        config: CallConfig,
        caller_id: str,
        callbacks: Optional[CallCallbacks] = None,
    ) -> SessionState:
        """
        Start a call limited to the caller's remaining wallet balance.

        Raises:
            InsufficientBalanceError: If the caller has no wallet or no seconds left
        """
        balance = await self.usage_recorder.get_balance(caller_id)
        if not balance or balance <= 0:
            self.notifier.notify("You have no minutes remaining in your wallet", Severity.ERROR)
            raise InsufficientBalanceError(caller_id)

        config = config.model_copy(
            update={
                "max_duration": f"{balance}s",
                "time_exceeded_message": (
                    config.time_exceeded_message or settings.wallet_time_exceeded_message
                ),
            }
        )
        return await self.start_call(config, caller_id, callbacks)

    async def start_call(
        self,
        config: CallConfig,
        caller_id: Optional[str] = None,
        callbacks: Optional[CallCallbacks] = None,
    ) -> SessionState:
        """
        Create a call, join it and arm the duration limit.

        Any call already in progress is ended first as completed. If
        anything fails along the way the call is ended with outcome
        error and the exception is re-raised.

        Returns:
            The state reached (Active)
        """
        if self._state != SessionState.IDLE or self._handle is not None:
            logger.info("[CALL MANAGER] Ending previous call before starting a new one")
            await self.end_call(CallOutcome.COMPLETED)

        self._clear_session_state()
        self._generation += 1
        generation = self._generation
        self._state = SessionState.STARTING
        self._caller_id = caller_id
        self._call_start_time = self._clock()
        callbacks = callbacks or CallCallbacks()
        handle: Optional[SessionHandle] = None

        logger.info(
            f"[CALL MANAGER] Starting call - caller: {caller_id or 'anonymous'}, "
            f"model: {config.model}, max duration: {config.max_duration}"
        )
        try:
            duration_ms = (
                self.duration_policy.parse(config.max_duration) if config.max_duration else None
            )

            join_url = await self._create_call(config)
            self._ensure_current(generation)

            transport = self.transport_factory()
            transport.register_tool_implementation(
                UPDATE_ORDER_TOOL, partial(update_order_tool, self.events)
            )
            handle = SessionHandle(
                transport,
                CallCallbacks(
                    on_status_change=partial(self._on_status_change, callbacks, generation),
                    on_transcript_change=callbacks.on_transcript_change,
                    on_diagnostic=callbacks.on_diagnostic,
                ),
            )
            self._handle = handle
            await handle.open(join_url)
            self._ensure_current(generation)

            if duration_ms is not None:
                self._timer = self.duration_policy.arm(
                    duration_ms, partial(self._on_duration_exceeded, config, generation)
                )
            self._state = SessionState.ACTIVE
        except Exception as e:
            logger.error(
                f"[CALL MANAGER] Error starting call - caller: {caller_id or 'anonymous'}, "
                f"Error: {type(e).__name__}: {e}",
                exc_info=True,
            )
            self.notifier.notify(f"Error starting call: {e}", Severity.ERROR)
            if generation == self._generation:
                await self.end_call(CallOutcome.ERROR)
            elif handle is not None:
                # A newer start/end owns the manager now; only release our own transport
                await self._close_handle(handle)
            raise

        logger.info(f"[CALL MANAGER] Call started - caller: {caller_id or 'anonymous'}")
        if callbacks.on_status_change:
            callbacks.on_status_change(self._handle.status)
        return self._state

    async def end_call(
        self,
        outcome: CallOutcome = CallOutcome.COMPLETED,
        caller_id: Optional[str] = None,
    ) -> None:
        """
        End the current call.

        Idempotent: with no session this only releases the timer and
        emits the call-ended signal; while a teardown is already running
        it waits for that teardown instead of starting another one.
        """
        self._generation += 1

        if self._teardown_done is not None:
            logger.debug(f"[CALL MANAGER] Teardown already running, ignoring end ({outcome.value})")
            await self._teardown_done.wait()
            return

        if self._handle is None:
            logger.info("[CALL MANAGER] No active session to end")
            self._release_timer()
            self._clear_session_state()
            self._state = SessionState.IDLE
            self.events.emit(CALL_ENDED)
            return

        self._teardown_done = asyncio.Event()
        try:
            await self._teardown(outcome, caller_id)
        finally:
            done, self._teardown_done = self._teardown_done, None
            done.set()

    def toggle_mute(self, role: Role) -> None:
        """Mute or unmute the user's microphone or the agent's audio."""
        if self._handle is None:
            logger.warning("[CALL MANAGER] Cannot toggle mute: No active session")
            return
        self._handle.toggle_mute(role)

    async def aclose(self) -> None:
        """End any call in progress and release the HTTP client."""
        await self.end_call(CallOutcome.COMPLETED)
        await self.http_client.aclose()

    async def _teardown(self, outcome: CallOutcome, caller_id: Optional[str]) -> None:
        self._state = SessionState.ENDING
        handle = self._handle
        caller = caller_id or self._caller_id
        start_time = self._call_start_time
        logger.info(
            f"[CALL MANAGER] Ending call - caller: {caller or 'anonymous'}, outcome: {outcome.value}"
        )

        try:
            self._release_timer()

            if caller and start_time is not None:
                await self._record_usage(caller, start_time, outcome)

            await self._close_handle(handle)
        finally:
            self._handle = None
            self._clear_session_state()
            self._state = SessionState.IDLE

        self.events.emit(CALL_ENDED)
        logger.info("[CALL MANAGER] Call ended successfully")

    async def _record_usage(
        self, caller_id: str, start_time: datetime, outcome: CallOutcome
    ) -> None:
        end_time = self._clock()
        # Half-up rounding; elapsed time is never negative
        duration = int(max(0.0, (end_time - start_time).total_seconds()) + 0.5)
        record = CallRecord(
            caller_id=caller_id,
            start_time=start_time,
            end_time=end_time,
            duration_seconds=duration,
            outcome=outcome,
        )

        try:
            await self.usage_recorder.record(record)
            remaining = await self.usage_recorder.decrement(caller_id, duration)
        except Exception as e:
            # Accounting failures must not keep the transport alive
            logger.error(
                f"[CALL MANAGER] Error saving call log - caller: {caller_id}, "
                f"Error: {type(e).__name__}: {e}",
                exc_info=True,
            )
            self.notifier.notify("Error updating call records", Severity.ERROR)
            return

        self.events.emit(WALLET_UPDATED, {"caller_id": caller_id, "seconds": remaining})

    async def _create_call(self, config: CallConfig) -> str:
        response = await self.http_client.post_json(
            self.create_call_url,
            config.to_request_body(),
            headers=self.request_headers,
        )
        try:
            data = JoinUrlResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise NetworkError(f"Invalid response from call creation endpoint: {e}") from e

        if not data.join_url:
            raise NetworkError("Join URL is required")
        logger.debug(f"[CALL MANAGER] Call created. Join URL: {data.join_url}")
        return data.join_url

    async def _close_handle(self, handle: Optional[SessionHandle]) -> None:
        if handle is None:
            return
        try:
            await handle.close()
        except Exception as e:
            logger.error(
                f"[CALL MANAGER] Error leaving call: {type(e).__name__}: {e}",
                exc_info=True,
            )
            self.notifier.notify("Error ending call", Severity.ERROR)

    def _ensure_current(self, generation: int) -> None:
        if generation != self._generation:
            raise TransportError("Call was ended before it finished starting")

    def _release_timer(self) -> None:
        self.duration_policy.disarm(self._timer)
        self._timer = None

    def _clear_session_state(self) -> None:
        self._call_start_time = None
        self._caller_id = None

    def _on_status_change(
        self, callbacks: CallCallbacks, generation: int, status: Optional[TransportStatus]
    ) -> None:
        if callbacks.on_status_change:
            callbacks.on_status_change(status)

        if (
            status == TransportStatus.DISCONNECTED
            and self._state == SessionState.ACTIVE
            and generation == self._generation
        ):
            logger.info("[CALL MANAGER] Provider reported disconnected")
            self._spawn(self.end_call(CallOutcome.DISCONNECTED))

    async def _on_duration_exceeded(self, config: CallConfig, generation: int) -> None:
        if generation != self._generation:
            return
        message = config.time_exceeded_message or settings.default_time_exceeded_message
        self.notifier.notify(message, Severity.INFO)
        await self.end_call(CallOutcome.DURATION_EXCEEDED)

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
