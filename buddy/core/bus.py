"""
Event bus for the Buddy companion.

Delivers typed events from the session machine, voice controllers and
conversation sessions to whoever is listening (a console driver, a UI layer,
other services). Handler failures are logged and never reach the publisher.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Callable, Awaitable
from .events import EventType, BaseEvent
from .registry import EventRegistry
from .tracing import EventTracer

# Type aliases
EventHandler = Callable[[BaseEvent], Awaitable[None]]

class EventBus:
    """
    Central event bus for delivering typed events between services.

    The event bus is responsible for:
    - Validating events against their registered schemas
    - Routing events to type-specific and wildcard subscribers
    - Isolating subscriber errors from the publisher
    - Feeding the optional tracer
    """

    def __init__(self, registry: EventRegistry, tracer: Optional[EventTracer] = None):
        self.registry = registry
        self.tracer = tracer
        self.subscribers: Dict[str, List[EventHandler]] = {}
        self.wildcard_subscribers: List[EventHandler] = []
        self.logger = logging.getLogger(__name__)

    async def publish(self, event: BaseEvent, sender: str) -> None:
        """
        Publish an event to all subscribers and wait for them to handle it.

        Args:
            event: The event to publish
            sender: Name of the service publishing the event
        """
        if not event.producer_name:
            event.producer_name = sender

        try:
            self.registry.validate_schema(event)
        except (ValueError, TypeError) as e:
            self.logger.error(f"Event validation failed: {e}")
            return

        if self.tracer:
            self.tracer.record_event(event)

        key = EventType(event.type).value
        all_subscribers = list(self.subscribers.get(key, [])) + list(self.wildcard_subscribers)
        if not all_subscribers:
            self.logger.debug(f"No subscribers for event type: {key}")
            return

        tasks = [asyncio.create_task(self._deliver_event(handler, event)) for handler in all_subscribers]
        await asyncio.gather(*tasks)

    async def _deliver_event(self, handler: EventHandler, event: BaseEvent) -> None:
        try:
            await handler(event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.error(
                f"Error delivering event {event.type} to {getattr(handler, '__qualname__', handler)}: {e}",
                exc_info=True
            )

    def subscribe(self, event_type: Optional[EventType], handler: EventHandler, service_name: str) -> None:
        """
        Subscribe a handler to events of a specific type, or all events if None.
        """
        if event_type is None:
            self.wildcard_subscribers.append(handler)
            self.logger.debug(f"{service_name} subscribed to all events")
            return

        key = EventType(event_type).value
        self.subscribers.setdefault(key, []).append(handler)
        self.registry.register_consumer(service_name, event_type)
        self.logger.debug(f"{service_name} subscribed to {key}")

    def unsubscribe(self, event_type: Optional[EventType], handler: EventHandler) -> None:
        """
        Unsubscribe a handler from events of a specific type, or all events if None.
        """
        if event_type is None:
            if handler in self.wildcard_subscribers:
                self.wildcard_subscribers.remove(handler)
            return

        key = EventType(event_type).value
        handlers = self.subscribers.get(key)
        if handlers and handler in handlers:
            handlers.remove(handler)
            if not handlers:
                del self.subscribers[key]
