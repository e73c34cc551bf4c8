"""Default call configuration for the demo agent."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from voicecall.services.call_session.models import CallConfig

DEMO_MODEL = "fixie-ai/ultravox-70B"
DEMO_VOICE = "5c66a578-7a4a-4bf9-b282-8c8a7ca3e6d8"

MOOD_CATEGORIES = ["negative", "neutral", "positive", "distress"]


class DemoConfig(BaseModel):
    """Demo page metadata plus the call configuration it starts."""

    title: str
    overview: str
    call_config: CallConfig


def get_system_prompt(first_name: Optional[str] = None, now: Optional[datetime] = None) -> str:
    """Build the agent's system prompt for a caller."""
    now = now or datetime.now()
    return f"""
## Agent Role
  - Name: Alex
  - Context: Voice-based conversation
  - Current time: {now.isoformat(timespec="minutes")}
  - User's name: {first_name or "Friend"}

## Tool Usage Instructions
Call the updateOrder tool as soon as you detect emotional keywords or phrases
in the user's speech, before you respond. Include every detected keyword in a
single call, set quantity and price to 1, and use specialInstructions for context.

## Tone
Warm, affirming and unhurried. Never judge, never diagnose. If the user sounds
overwhelmed, slow down and keep replies short.
"""


def get_selected_tools() -> List[Dict[str, Any]]:
    """Client-side tool that reports mood indicators back to the page."""
    return [
        {
            "temporaryTool": {
                "modelToolName": "updateOrder",
                "description": (
                    "Update mood indicators and emotional state tracking based on the "
                    "user's conversation. Call this whenever significant emotional "
                    "keywords or mood indicators are detected."
                ),
                "dynamicParameters": [
                    {
                        "name": "orderDetailsData",
                        "location": "PARAMETER_LOCATION_BODY",
                        "schema": {
                            "description": "An array of objects containing mood indicators and context.",
                            "type": "array",
                            "items": {
                                "type": "object",
                                "properties": {
                                    "name": {"type": "string"},
                                    "quantity": {"type": "number", "default": 1},
                                    "specialInstructions": {"type": "string"},
                                    "price": {"type": "number", "default": 1},
                                    "category": {"type": "string", "enum": MOOD_CATEGORIES},
                                },
                                "required": ["name", "quantity", "price"],
                            },
                        },
                        "required": True,
                    }
                ],
                "client": {},
            }
        }
    ]


def get_demo_config(first_name: Optional[str] = None) -> DemoConfig:
    """Get the demo page configuration."""
    return DemoConfig(
        title="AlexListens",
        overview=(
            "No criticism. No judgment. No appointments needed. "
            "Just pure acceptance... exactly when you need it."
        ),
        call_config=CallConfig(
            system_prompt=get_system_prompt(first_name),
            model=DEMO_MODEL,
            language_hint="en",
            selected_tools=get_selected_tools(),
            voice=DEMO_VOICE,
            temperature=0.4,
        ),
    )
