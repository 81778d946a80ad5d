"""
Session and onboarding events for the Buddy companion.

These events describe the onboarding state machine: stage transitions, login
failures, forced logouts and the profile/avatar records it creates.
"""

from typing import Any, Dict, Literal, Optional
from buddy.core.events import BaseEvent, EventType

class StageChangedEvent(BaseEvent):
    """
    Event published on every onboarding stage transition.

    cohort is set once known so that a UI can pick the dashboard variant.
    """
    type: Literal[EventType.STAGE_CHANGED] = EventType.STAGE_CHANGED
    stage: str
    previous_stage: str
    trigger: str
    cohort: Optional[str] = None

class SessionExpiredEvent(BaseEvent):
    """
    Event published when an authenticated call was rejected and the session
    was cleared back to the login view.
    """
    type: Literal[EventType.SESSION_EXPIRED] = EventType.SESSION_EXPIRED
    reason: str

class LoginFailedEvent(BaseEvent):
    """Event published when credentials are rejected; message is the provider's."""
    type: Literal[EventType.LOGIN_FAILED] = EventType.LOGIN_FAILED
    message: str

class ProfileUpdatedEvent(BaseEvent):
    type: Literal[EventType.PROFILE_UPDATED] = EventType.PROFILE_UPDATED
    changed: Dict[str, Any] = {}

class AvatarCreatedEvent(BaseEvent):
    type: Literal[EventType.AVATAR_CREATED] = EventType.AVATAR_CREATED
    character: str
    emoji: str
    name: str
