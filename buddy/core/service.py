"""
Base service implementation for the Buddy companion.

This module provides the BaseService class that the session machine, the voice
controllers and conversation sessions inherit from, defining the lifecycle and
event handling interfaces.
"""

import asyncio
import structlog
from typing import Dict, Any, Optional, ClassVar
from .events import EventType, BaseEvent
from .registry import ServiceRegistry
from .bus import EventBus

class BaseService:
    """
    Base class for all services.

    This class provides:
    - Service lifecycle management (start/stop)
    - Typed event publishing and handling
    - Service registration
    - Structured logging with context

    Subclasses declare the events they produce and consume.
    """

    # Map of EventType to {'schema': event class, 'description': text}
    PRODUCES_EVENTS: ClassVar[Dict[EventType, Dict[str, Any]]] = {}

    # Map of EventType to handler method name
    CONSUMES_EVENTS: ClassVar[Dict[EventType, str]] = {}

    def __init__(self,
                 event_bus: EventBus,
                 service_registry: ServiceRegistry,
                 name: Optional[str] = None,
                 config: Optional[Any] = None):
        """
        Initialize the service.

        Args:
            event_bus: The event bus for publishing and subscribing to events
            service_registry: The service registry for service lifecycle management
            name: Optional service name (defaults to class name)
            config: Optional service configuration
        """
        from buddy.events.system import ServiceStateChangedEvent

        self.event_bus = event_bus
        self.service_registry = service_registry
        self.name = name or self.__class__.__name__
        self.config = config

        self.logger = structlog.get_logger(service=self.name)

        self._running = False
        self._lifecycle_lock = asyncio.Lock()

        produces = dict(self.PRODUCES_EVENTS)
        produces.setdefault(EventType.SERVICE_STATE_CHANGED, {
            'schema': ServiceStateChangedEvent,
            'description': "A service changed lifecycle state"
        })
        for event_type, event_info in produces.items():
            event_bus.registry.register_producer(self.name, event_type)
            if 'schema' in event_info and 'description' in event_info:
                event_bus.registry.register_event(
                    event_type,
                    event_info['schema'],
                    event_info['description']
                )

        self.service_registry.register_service(self.name, self)

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """
        Start the service: subscribe to consumed events, then run the
        service-specific startup hook.
        """
        async with self._lifecycle_lock:
            if self._running:
                self.logger.warning("Service already running")
                return

            for event_type, handler_name in self.CONSUMES_EVENTS.items():
                self.event_bus.subscribe(event_type, getattr(self, handler_name), self.name)

            self._running = True
            self.service_registry.set_service_state(self.name, 'running')
            self.logger.info("Service started")

        await self.publish_service_state('started')
        await self._on_start()

    async def stop(self) -> None:
        """
        Stop the service: run the service-specific cleanup hook, then
        unsubscribe and mark the service stopped.
        """
        async with self._lifecycle_lock:
            if not self._running:
                self.logger.warning("Service already stopped")
                return

        await self.publish_service_state('stopping')
        await self._on_stop()

        async with self._lifecycle_lock:
            for event_type, handler_name in self.CONSUMES_EVENTS.items():
                self.event_bus.unsubscribe(event_type, getattr(self, handler_name))

            self._running = False
            self.service_registry.set_service_state(self.name, 'stopped')
            self.logger.info("Service stopped")

    async def _on_start(self) -> None:
        """Service-specific startup. Default does nothing."""

    async def _on_stop(self) -> None:
        """Service-specific cleanup. Default does nothing."""

    async def publish(self, event: BaseEvent) -> None:
        """
        Publish an event through the bus.

        Events published while the service is stopped are dropped with a warning;
        the service's own state is never affected by a missing audience.
        """
        if not self._running:
            self.logger.debug("Publish while stopped", event_type=event.type)
            return

        if not event.producer_name:
            event.producer_name = self.name

        await self.event_bus.publish(event, self.name)

    async def publish_service_state(self, state: str) -> None:
        from buddy.events.system import ServiceStateChangedEvent

        event = ServiceStateChangedEvent(
            producer_name=self.name,
            service_name=self.name,
            state=state
        )
        await self.event_bus.publish(event, self.name)
