"""
System events for the Buddy companion.

This module defines events related to application lifecycle and service state.
"""

from typing import Dict, Any, Optional, Literal
from buddy.core.events import BaseEvent, EventType

class ApplicationStartupCompletedEvent(BaseEvent):
    """
    Event published when application startup has completed.

    All services have been started and the session machine is ready for input.
    """
    type: Literal[EventType.APPLICATION_STARTUP_COMPLETED] = EventType.APPLICATION_STARTUP_COMPLETED

class ServiceStateChangedEvent(BaseEvent):
    """
    Event published when a service changes lifecycle state.
    """
    type: Literal[EventType.SERVICE_STATE_CHANGED] = EventType.SERVICE_STATE_CHANGED
    service_name: str
    state: str  # 'started', 'stopping'
    error: Optional[str] = None

class ServiceErrorEvent(BaseEvent):
    """
    Event published when a service hits a non-fatal error worth surfacing,
    such as a profile load failure after login.
    """
    type: Literal[EventType.SERVICE_ERROR] = EventType.SERVICE_ERROR
    service_name: str
    error_type: str
    error_message: str
    details: Optional[Dict[str, Any]] = None
