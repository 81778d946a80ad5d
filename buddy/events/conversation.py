"""
Conversation events for the Buddy companion.
"""

from typing import Literal
from buddy.core.events import BaseEvent, EventType

class ConversationTurnEvent(BaseEvent):
    """
    Event published when a turn is appended to a dashboard transcript.

    index is the turn's position in the transcript, starting at 0 for the greeting.
    """
    type: Literal[EventType.CONVERSATION_TURN] = EventType.CONVERSATION_TURN
    speaker: str  # 'user' or 'companion'
    text: str
    index: int
    cohort: str
