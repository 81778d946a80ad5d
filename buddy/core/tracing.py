"""
Event tracing for the Buddy companion.

Keeps a bounded buffer of recently published events so that a session can be
replayed while debugging (stage changes, capture state, utterances, turns).
"""

import time
import logging
from typing import Dict, List, Optional, Any, Deque
from collections import deque, Counter
from .events import EventType, BaseEvent

class EventTracer:
    """
    Records events as they are published, up to max_events.
    """

    def __init__(self, max_events: int = 1000):
        self.max_events = max_events
        self.events: Deque[Dict[str, Any]] = deque(maxlen=max_events)
        self.logger = logging.getLogger(__name__)

    def record_event(self, event: BaseEvent) -> None:
        trace_data = {
            'timestamp': time.time(),
            'trace_id': event.trace_id,
            'type': EventType(event.type).value,
            'producer': event.producer_name,
            'event_data': event.model_dump(exclude={'trace_id', 'type', 'producer_name'})
        }
        self.events.append(trace_data)
        self.logger.debug(f"Recorded event {trace_data['type']} from {event.producer_name}")

    def get_trace(self, trace_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Get all events for a trace ID, or every buffered event when None.
        """
        if trace_id is None:
            return list(self.events)
        return [e for e in self.events if e['trace_id'] == trace_id]

    def get_events_by_type(self, event_type: EventType) -> List[Dict[str, Any]]:
        key = EventType(event_type).value
        return [e for e in self.events if e['type'] == key]

    def get_events_by_producer(self, producer_name: str) -> List[Dict[str, Any]]:
        return [e for e in self.events if e['producer'] == producer_name]

    def clear(self) -> None:
        self.events.clear()

    def get_event_stats(self) -> Dict[str, Any]:
        """
        Count buffered events by type and by producer.
        """
        return {
            'total_events': len(self.events),
            'event_types': dict(Counter(e['type'] for e in self.events)),
            'producers': dict(Counter(e['producer'] for e in self.events)),
        }
