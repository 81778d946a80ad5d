"""
Event and service registry for the Buddy companion.

Events are only delivered when their type has a registered schema, so every
service declares what it produces and the registry records who consumes what.
"""

import logging
from typing import Dict, Set, Type, Any, Optional
from .events import EventType, BaseEvent

class EventRegistry:
    """
    Central registry of event schemas, producers and consumers.

    The bus consults this registry before delivering any event; an event whose
    type is unknown or whose class does not match the registered schema is dropped.
    """

    def __init__(self):
        self._producers: Dict[str, Set[str]] = {}
        self._consumers: Dict[str, Set[str]] = {}
        self._event_schemas: Dict[str, Dict[str, Any]] = {}
        self._logger = logging.getLogger(__name__)

    def register_event(self, event_type: EventType, event_schema: Type[BaseEvent], description: str):
        """
        Register an event type with its schema and description.

        Registering the same type twice with the same schema is a no-op; a
        different schema for an existing type is rejected.
        """
        key = EventType(event_type).value
        existing = self._event_schemas.get(key)
        if existing and existing['schema'] is not event_schema:
            raise ValueError(f"Event type {key} already registered with {existing['schema'].__name__}")
        self._event_schemas[key] = {
            'schema': event_schema,
            'description': description
        }
        self._logger.debug(f"Registered event type: {key}")

    def register_producer(self, service_name: str, event_type: EventType):
        self._producers.setdefault(EventType(event_type).value, set()).add(service_name)

    def register_consumer(self, service_name: str, event_type: EventType):
        self._consumers.setdefault(EventType(event_type).value, set()).add(service_name)

    def validate_schema(self, event: BaseEvent) -> bool:
        """
        Validate that an event matches its registered schema.

        Raises:
            ValueError: If event type is unknown
            TypeError: If event doesn't match registered schema
        """
        key = EventType(event.type).value
        if key not in self._event_schemas:
            raise ValueError(f"Unknown event type: {key}")

        schema = self._event_schemas[key]['schema']
        if not isinstance(event, schema):
            raise TypeError(f"Event {type(event).__name__} does not match schema for {key}")

        return True

    def get_event_flow(self, event_type: EventType) -> Dict[str, Set[str]]:
        """Get all producers and consumers for an event type."""
        key = EventType(event_type).value
        return {
            'producers': set(self._producers.get(key, set())),
            'consumers': set(self._consumers.get(key, set()))
        }

    def get_event_schema(self, event_type: EventType) -> Optional[Type[BaseEvent]]:
        entry = self._event_schemas.get(EventType(event_type).value)
        return entry['schema'] if entry else None

    def get_all_event_types(self) -> Set[str]:
        return set(self._event_schemas.keys())

    def generate_documentation(self) -> Dict[str, Any]:
        """
        Describe every registered event: its description, schema and the
        services on both ends of it.
        """
        doc = {}
        for key in sorted(self.get_all_event_types()):
            doc[key] = {
                'description': self._event_schemas[key]['description'],
                'producers': sorted(self._producers.get(key, set())),
                'consumers': sorted(self._consumers.get(key, set())),
                'schema': self._event_schemas[key]['schema'].__name__
            }
        return doc


class ServiceRegistry:
    """
    Registry for services and their lifecycle state.

    A service may be registered under the name of an earlier one (for example a
    fresh conversation session after logout); the newer instance replaces it.
    """

    def __init__(self):
        self._services: Dict[str, Any] = {}
        self._states: Dict[str, str] = {}
        self._logger = logging.getLogger(__name__)

    def register_service(self, service_name: str, service_instance: Any):
        if service_name in self._services:
            self._logger.debug(f"Replacing registered service: {service_name}")
        self._services[service_name] = service_instance
        self._states[service_name] = "registered"

    def get_service(self, service_name: str) -> Optional[Any]:
        return self._services.get(service_name)

    def set_service_state(self, service_name: str, state: str):
        self._states[service_name] = state
        self._logger.debug(f"Service {service_name} state changed to {state}")

    def get_service_state(self, service_name: str) -> Optional[str]:
        return self._states.get(service_name)

    def get_all_services(self) -> Dict[str, Any]:
        return self._services.copy()
