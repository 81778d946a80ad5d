"""
Care events for the Buddy companion.
"""

from typing import Literal, Optional
from buddy.core.events import BaseEvent, EventType

class SosRaisedEvent(BaseEvent):
    """Event published once an SOS alert has been accepted by the backend."""
    type: Literal[EventType.SOS_RAISED] = EventType.SOS_RAISED
    message: str
    location: Optional[str] = None
