"""
Voice interaction events for the Buddy companion.

This module defines events for microphone capture, speech synthesis and the
talking-avatar animation state derived from it.
"""

from typing import Literal, Optional
from buddy.core.events import BaseEvent, EventType

class VoiceCaptureStateChangedEvent(BaseEvent):
    """
    Event published on every voice capture state transition.

    reason is present only for the unavailable state and is meant to be shown
    to the user as is.
    """
    type: Literal[EventType.VOICE_CAPTURE_STATE_CHANGED] = EventType.VOICE_CAPTURE_STATE_CHANGED
    state: str  # 'unchecked', 'checking', 'unavailable', 'idle', 'listening'
    previous_state: str
    reason: Optional[str] = None

class TranscriptReceivedEvent(BaseEvent):
    """Event published when a capture session recognized an utterance."""
    type: Literal[EventType.TRANSCRIPT_RECEIVED] = EventType.TRANSCRIPT_RECEIVED
    transcript: str
    locale: str

class UtteranceStartedEvent(BaseEvent):
    """
    Event published when synthesis of an utterance begins.

    duration_ms is the estimate used to drive the talking animation.
    """
    type: Literal[EventType.UTTERANCE_STARTED] = EventType.UTTERANCE_STARTED
    text: str
    cohort: str
    rate: float
    pitch: float
    volume: float
    duration_ms: int

class UtteranceCancelledEvent(BaseEvent):
    type: Literal[EventType.UTTERANCE_CANCELLED] = EventType.UTTERANCE_CANCELLED
    text: str

class AvatarStateChangedEvent(BaseEvent):
    """Event published when the avatar starts or stops talking or changes emotion."""
    type: Literal[EventType.AVATAR_STATE_CHANGED] = EventType.AVATAR_STATE_CHANGED
    is_talking: bool
    emotion: str
