"""
Core event system for the Buddy companion.

This module defines the base event model and event type enum that form the foundation
of the typed event system. All events in the system should inherit from BaseEvent.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from enum import Enum
import time
import uuid

class EventType(str, Enum):
    """
    Enum defining all event types in the system.

    Using string-based enum to ensure JSON serialization works properly.
    """
    # Application lifecycle events
    APPLICATION_STARTUP_COMPLETED = "application_startup_completed"

    # Session and onboarding events
    STAGE_CHANGED = "stage_changed"
    SESSION_EXPIRED = "session_expired"
    LOGIN_FAILED = "login_failed"
    PROFILE_UPDATED = "profile_updated"
    AVATAR_CREATED = "avatar_created"

    # Voice events
    VOICE_CAPTURE_STATE_CHANGED = "voice_capture_state_changed"
    TRANSCRIPT_RECEIVED = "transcript_received"
    UTTERANCE_STARTED = "utterance_started"
    UTTERANCE_CANCELLED = "utterance_cancelled"
    AVATAR_STATE_CHANGED = "avatar_state_changed"

    # Conversation events
    CONVERSATION_TURN = "conversation_turn"

    # Care events
    SOS_RAISED = "sos_raised"

    # System events
    SERVICE_ERROR = "service_error"
    SERVICE_STATE_CHANGED = "service_state_changed"

def generate_trace_id() -> str:
    """Generate a unique trace ID for event tracing."""
    return str(uuid.uuid4())

class BaseEvent(BaseModel):
    """
    Base model for all events with common metadata.

    All events in the system should inherit from this class and specify the event type
    and any additional payload fields required for that event.
    """
    # Allow extra attributes and store enum values rather than the enum objects
    model_config = ConfigDict(extra="allow", use_enum_values=True)

    type: EventType
    producer_name: str = ""
    timestamp: float = Field(default_factory=time.time)
    trace_id: Optional[str] = Field(default_factory=generate_trace_id)
