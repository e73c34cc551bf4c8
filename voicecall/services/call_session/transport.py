"""Realtime voice transport."""
import asyncio
import inspect
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union
from urllib.parse import urlencode, urlparse

import websockets
from websockets.exceptions import ConnectionClosed

from voicecall.core.errors import TransportError
from voicecall.services.call_session.models import Role, Transcript, TransportStatus

logger = logging.getLogger(__name__)

# Event names emitted by transports
STATUS_EVENT = "status"
TRANSCRIPT_EVENT = "transcript"
EXPERIMENTAL_MESSAGE_EVENT = "experimental_message"

CONNECTION_TIMEOUT = 30  # seconds
WS_MAX_SIZE = 16 * 1024 * 1024  # large enough for audio frames
WS_PING_INTERVAL = 5

TransportListener = Callable[[Any], None]
ClientToolImplementation = Callable[[Dict[str, Any]], Union[Any, Awaitable[Any]]]


class VoiceTransport(ABC):
    """
    Base class for realtime voice sessions.

    Subclasses implement joining and leaving; listener bookkeeping,
    mute flags, status and transcripts live here.
    """

    def __init__(self, experimental_messages: Optional[Set[str]] = None):
        self.experimental_messages = set(experimental_messages or ())
        self.status = TransportStatus.DISCONNECTED
        self.transcripts: List[Transcript] = []
        self.is_mic_muted = False
        self.is_speaker_muted = False
        self._listeners: Dict[str, List[TransportListener]] = {}
        self._client_tools: Dict[str, ClientToolImplementation] = {}

    @abstractmethod
    async def join_call(self, join_url: str) -> None:
        """Connect to a provisioned call. Returns once connected."""
        pass

    @abstractmethod
    async def leave_call(self) -> None:
        """Leave the call. Safe to call when never joined."""
        pass

    def add_event_listener(self, event: str, listener: TransportListener) -> None:
        self._listeners.setdefault(event, []).append(listener)

    def remove_event_listener(self, event: str, listener: TransportListener) -> None:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event: Optional[str] = None) -> int:
        if event is not None:
            return len(self._listeners.get(event, []))
        return sum(len(listeners) for listeners in self._listeners.values())

    def register_tool_implementation(self, name: str, implementation: ClientToolImplementation) -> None:
        """Register the function that answers the agent's calls to a client tool."""
        self._client_tools[name] = implementation

    async def handle_tool_invocation(self, invocation: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run a client tool for a client_tool_invocation message.

        Returns:
            The client_tool_result message to send back to the provider
        """
        name = invocation.get("toolName")
        reply: Dict[str, Any] = {
            "type": "client_tool_result",
            "invocationId": invocation.get("invocationId"),
        }
        implementation = self._client_tools.get(name)
        if implementation is None:
            logger.warning(f"[TRANSPORT] No implementation registered for client tool: {name}")
            reply["errorType"] = "undefined"
            reply["errorMessage"] = f"Client tool {name!r} is not registered"
            return reply

        try:
            result = implementation(invocation.get("parameters") or {})
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.error(
                f"[TRANSPORT] Client tool {name} failed: {type(e).__name__}: {e}",
                exc_info=True,
            )
            reply["errorType"] = "implementation-error"
            reply["errorMessage"] = str(e)
            return reply

        reply["result"] = result if isinstance(result, str) else json.dumps(result)
        reply["responseType"] = "tool-response"
        return reply

    def mute_mic(self) -> None:
        self.is_mic_muted = True

    def unmute_mic(self) -> None:
        self.is_mic_muted = False

    def mute_speaker(self) -> None:
        self.is_speaker_muted = True

    def unmute_speaker(self) -> None:
        self.is_speaker_muted = False

    def _set_status(self, status: TransportStatus) -> None:
        if status == self.status:
            return
        self.status = status
        self._dispatch(STATUS_EVENT, status)

    def _dispatch(self, event: str, payload: Any) -> None:
        for listener in list(self._listeners.get(event, [])):
            try:
                listener(payload)
            except Exception as e:
                logger.error(
                    f"[TRANSPORT] '{event}' listener failed: {type(e).__name__}: {e}",
                    exc_info=True,
                )


class WebSocketVoiceTransport(VoiceTransport):
    """
    Voice session over the provider's WebSocket join URL.

    Text frames carry JSON data messages (state, transcript, debug);
    binary frames carry audio and are handed to the optional audio sink
    unless the speaker is muted.
    """

    def __init__(
        self,
        experimental_messages: Optional[Set[str]] = None,
        audio_sink: Optional[Callable[[bytes], None]] = None,
    ):
        super().__init__(experimental_messages)
        self.audio_sink = audio_sink
        self.ws = None
        self._recv_task: Optional[asyncio.Task] = None
        self._tool_tasks: Set[asyncio.Task] = set()
        self._is_closing = False

    def _build_url(self, join_url: str) -> str:
        params = {"apiVersion": "1"}
        if self.experimental_messages:
            params["experimentalMessages"] = ",".join(sorted(self.experimental_messages))
        separator = "&" if urlparse(join_url).query else "?"
        return f"{join_url}{separator}{urlencode(params)}"

    async def join_call(self, join_url: str) -> None:
        if self.ws is not None:
            raise TransportError("Transport is already joined to a call")

        self._is_closing = False
        self._set_status(TransportStatus.CONNECTING)
        try:
            logger.info("[TRANSPORT] Connecting to voice session")
            ws = await asyncio.wait_for(
                websockets.connect(
                    self._build_url(join_url),
                    max_size=WS_MAX_SIZE,
                    ping_interval=WS_PING_INTERVAL,
                    compression=None,
                ),
                timeout=CONNECTION_TIMEOUT,
            )
        except asyncio.TimeoutError as e:
            self._set_status(TransportStatus.DISCONNECTED)
            raise TransportError(
                f"Timeout while joining call (after {CONNECTION_TIMEOUT}s)"
            ) from e
        except (OSError, websockets.WebSocketException) as e:
            self._set_status(TransportStatus.DISCONNECTED)
            raise TransportError(f"Failed to join call: {e}") from e

        if self._is_closing:
            # leave_call() ran while we were connecting
            await ws.close()
            raise TransportError("Call was left before the connection completed")

        self.ws = ws
        self._recv_task = asyncio.create_task(self._recv_loop())
        self._set_status(TransportStatus.IDLE)
        logger.info("[TRANSPORT] Joined voice session")

    async def leave_call(self) -> None:
        self._is_closing = True
        if self.status != TransportStatus.DISCONNECTED:
            self._set_status(TransportStatus.DISCONNECTING)

        if self._recv_task is not None:
            self._recv_task.cancel()
            try:
                await self._recv_task
            except asyncio.CancelledError:
                pass
            self._recv_task = None

        ws, self.ws = self.ws, None
        try:
            if ws is not None:
                await ws.close()
        except Exception as e:
            raise TransportError(f"Error while leaving call: {e}") from e
        finally:
            self._set_status(TransportStatus.DISCONNECTED)
        logger.info("[TRANSPORT] Left voice session")

    async def send_data_message(self, message: Dict[str, Any]) -> None:
        if self.ws is None:
            raise TransportError("Cannot send message - transport is not joined")
        await self.ws.send(json.dumps(message))

    async def _recv_loop(self) -> None:
        try:
            async for message in self.ws:
                if isinstance(message, bytes):
                    if self.audio_sink and not self.is_speaker_muted:
                        self.audio_sink(message)
                    continue
                self._handle_data_message(message)
        except ConnectionClosed as e:
            logger.info(f"[TRANSPORT] Connection closed by provider: {e}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[TRANSPORT] Receive loop error: {e}", exc_info=True)

        if not self._is_closing:
            self.ws = None
            self._set_status(TransportStatus.DISCONNECTED)

    def _handle_data_message(self, raw: str) -> None:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"[TRANSPORT] Received invalid JSON: {raw[:100]}...")
            return

        message_type = data.get("type")
        if message_type == "state":
            try:
                self._set_status(TransportStatus(data.get("state")))
            except ValueError:
                logger.debug(f"[TRANSPORT] Ignoring unknown state: {data.get('state')}")
        elif message_type == "transcript":
            self._apply_transcript(data)
        elif message_type == "client_tool_invocation":
            task = asyncio.create_task(self._answer_tool_invocation(data))
            self._tool_tasks.add(task)
            task.add_done_callback(self._tool_tasks.discard)
        elif message_type == "debug":
            if "debug" in self.experimental_messages:
                self._dispatch(EXPERIMENTAL_MESSAGE_EVENT, data)
        else:
            logger.debug(f"[TRANSPORT] Received message of type: {message_type or 'unknown'}")

    async def _answer_tool_invocation(self, invocation: Dict[str, Any]) -> None:
        reply = await self.handle_tool_invocation(invocation)
        try:
            await self.send_data_message(reply)
        except (TransportError, ConnectionClosed) as e:
            logger.warning(f"[TRANSPORT] Could not send client tool result: {e}")

    def _apply_transcript(self, data: Dict[str, Any]) -> None:
        ordinal = int(data.get("ordinal", len(self.transcripts)))
        speaker = Role.AGENT if data.get("role") == "agent" else Role.USER
        is_final = bool(data.get("final", False))
        medium = data.get("medium", "voice")

        existing = next((t for t in self.transcripts if t.ordinal == ordinal), None)
        if existing is None:
            text = data.get("text") or data.get("delta") or ""
            self.transcripts.append(
                Transcript(text=text, is_final=is_final, speaker=speaker, medium=medium, ordinal=ordinal)
            )
        else:
            if data.get("text") is not None:
                existing.text = data["text"]
            elif data.get("delta"):
                existing.text += data["delta"]
            existing.is_final = is_final
        self._dispatch(TRANSCRIPT_EVENT, self.transcripts)
