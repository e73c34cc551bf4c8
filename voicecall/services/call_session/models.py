"""Call session models."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SessionState(str, Enum):
    """Lifecycle state of the call manager."""

    IDLE = "idle"
    STARTING = "starting"
    ACTIVE = "active"
    ENDING = "ending"


class CallOutcome(str, Enum):
    """Terminal classification of a finished call."""

    COMPLETED = "completed"
    DISCONNECTED = "disconnected"
    ERROR = "error"
    DURATION_EXCEEDED = "duration_exceeded"


class Role(str, Enum):
    """Conversation party."""

    USER = "user"
    AGENT = "agent"


class TransportStatus(str, Enum):
    """Status values reported by the voice transport."""

    DISCONNECTED = "disconnected"
    DISCONNECTING = "disconnecting"
    CONNECTING = "connecting"
    IDLE = "idle"
    LISTENING = "listening"
    THINKING = "thinking"
    SPEAKING = "speaking"


class Transcript(BaseModel):
    """One utterance in the conversation."""

    text: str
    is_final: bool = False
    speaker: Role
    medium: str = "voice"
    ordinal: int = 0


class CallConfig(BaseModel):
    """Immutable description of the voice session to create."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    system_prompt: str = Field(alias="systemPrompt")
    model: Optional[str] = None
    language_hint: Optional[str] = Field(default=None, alias="languageHint")
    voice: Optional[str] = None
    temperature: Optional[float] = None
    selected_tools: List[Dict[str, Any]] = Field(default_factory=list, alias="selectedTools")
    max_duration: Optional[str] = Field(default=None, alias="maxDuration")  # "<N>h" | "<N>m" | "<N>s"
    time_exceeded_message: Optional[str] = Field(default=None, alias="timeExceededMessage")

    def to_request_body(self) -> Dict[str, Any]:
        """Serialize using the provider's camelCase field names."""
        return self.model_dump(by_alias=True, exclude_none=True)


class JoinUrlResponse(BaseModel):
    """Response from the call-creation endpoint."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    join_url: Optional[str] = Field(default=None, alias="joinUrl")
    call_id: Optional[str] = Field(default=None, alias="callId")


class CallRecord(BaseModel):
    """Finished call, written once at teardown."""

    model_config = ConfigDict(frozen=True)

    caller_id: str
    start_time: datetime
    end_time: datetime
    duration_seconds: int
    outcome: CallOutcome
