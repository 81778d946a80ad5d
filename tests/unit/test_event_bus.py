"""
Unit tests for the event bus, registries, tracer and service lifecycle.
"""

import os
import sys
import unittest

sys.path.insert(0, os.path.dirname(__file__))

from fakes import EventRecorder, make_bus

from buddy.core import BaseService, EventBus, EventRegistry, EventTracer, EventType, ServiceRegistry
from buddy.events.conversation import ConversationTurnEvent
from buddy.events.session import LoginFailedEvent, StageChangedEvent
from buddy.events.system import ServiceStateChangedEvent


class EchoService(BaseService):

    PRODUCES_EVENTS = {
        EventType.LOGIN_FAILED: {
            'schema': LoginFailedEvent,
            'description': "Test event"
        },
    }

    CONSUMES_EVENTS = {
        EventType.STAGE_CHANGED: 'handle_stage_changed',
    }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.seen = []
        self.started = False
        self.stopped = False

    async def _on_start(self):
        self.started = True

    async def _on_stop(self):
        self.stopped = True

    async def handle_stage_changed(self, event):
        self.seen.append(event.stage)


class TestEventRegistry(unittest.TestCase):

    def test_unknown_event_type_rejected(self):
        registry = EventRegistry()
        with self.assertRaises(ValueError):
            registry.validate_schema(LoginFailedEvent(message="nope"))

    def test_schema_mismatch_rejected(self):
        registry = EventRegistry()
        registry.register_event(EventType.LOGIN_FAILED, LoginFailedEvent, "Login failed")
        event = ConversationTurnEvent(speaker="user", text="hi", index=1, cohort="kids")
        event.type = EventType.LOGIN_FAILED.value
        with self.assertRaises(TypeError):
            registry.validate_schema(event)

    def test_conflicting_registration_rejected(self):
        registry = EventRegistry()
        registry.register_event(EventType.LOGIN_FAILED, LoginFailedEvent, "Login failed")
        registry.register_event(EventType.LOGIN_FAILED, LoginFailedEvent, "Login failed")
        with self.assertRaises(ValueError):
            registry.register_event(EventType.LOGIN_FAILED, StageChangedEvent, "Wrong")

    def test_documentation_lists_both_ends(self):
        bus, services = make_bus()
        bus.registry.register_event(EventType.STAGE_CHANGED, StageChangedEvent, "Stage changed")
        EchoService(bus, services)

        doc = bus.registry.generate_documentation()

        self.assertEqual(doc['login_failed']['producers'], ['EchoService'])
        self.assertEqual(doc['login_failed']['schema'], 'LoginFailedEvent')
        self.assertIn('service_state_changed', doc)


class TestServiceRegistry(unittest.TestCase):

    def test_later_registration_replaces_earlier(self):
        registry = ServiceRegistry()
        first, second = object(), object()
        registry.register_service("ConversationSession", first)
        registry.set_service_state("ConversationSession", "running")
        registry.register_service("ConversationSession", second)

        self.assertIs(registry.get_service("ConversationSession"), second)
        self.assertEqual(registry.get_service_state("ConversationSession"), "registered")


class TestEventBus(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.tracer = EventTracer(max_events=3)
        self.bus = EventBus(EventRegistry(), self.tracer)
        self.bus.registry.register_event(EventType.STAGE_CHANGED, StageChangedEvent, "Stage changed")

    def stage_event(self, stage="login"):
        return StageChangedEvent(stage=stage, previous_stage="landing", trigger="logo_activated")

    async def test_delivers_to_type_and_wildcard_subscribers(self):
        typed, everything = [], []

        async def on_stage(event):
            typed.append(event)

        async def on_any(event):
            everything.append(event)

        self.bus.subscribe(EventType.STAGE_CHANGED, on_stage, "test")
        self.bus.subscribe(None, on_any, "test")

        await self.bus.publish(self.stage_event(), "sender")

        self.assertEqual(len(typed), 1)
        self.assertEqual(len(everything), 1)
        self.assertEqual(typed[0].producer_name, "sender")

    async def test_unregistered_event_is_dropped(self):
        recorder = EventRecorder(self.bus)
        await self.bus.publish(LoginFailedEvent(message="nope"), "sender")
        self.assertEqual(recorder.events, [])
        self.assertEqual(self.tracer.get_trace(), [])

    async def test_handler_error_does_not_reach_publisher(self):
        received = []

        async def broken(event):
            raise RuntimeError("handler failed")

        async def working(event):
            received.append(event)

        self.bus.subscribe(EventType.STAGE_CHANGED, broken, "test")
        self.bus.subscribe(EventType.STAGE_CHANGED, working, "test")

        with self.assertLogs('buddy.core.bus', level='ERROR'):
            await self.bus.publish(self.stage_event(), "sender")
        self.assertEqual(len(received), 1)

    async def test_unsubscribe(self):
        received = []

        async def handler(event):
            received.append(event)

        self.bus.subscribe(EventType.STAGE_CHANGED, handler, "test")
        self.bus.unsubscribe(EventType.STAGE_CHANGED, handler)
        await self.bus.publish(self.stage_event(), "sender")

        self.assertEqual(received, [])
        self.assertNotIn('stage_changed', self.bus.subscribers)

    async def test_tracer_keeps_most_recent_events(self):
        for stage in ("login", "ageSelect", "registering", "creatingAvatar"):
            await self.bus.publish(self.stage_event(stage), "machine")

        trace = self.tracer.get_trace()
        self.assertEqual([e['event_data']['stage'] for e in trace],
                         ["ageSelect", "registering", "creatingAvatar"])
        stats = self.tracer.get_event_stats()
        self.assertEqual(stats['total_events'], 3)
        self.assertEqual(stats['producers'], {'machine': 3})
        self.assertEqual(len(self.tracer.get_events_by_type(EventType.STAGE_CHANGED)), 3)


class TestServiceLifecycle(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.bus, self.services = make_bus()
        self.bus.registry.register_event(EventType.STAGE_CHANGED, StageChangedEvent, "Stage changed")
        self.recorder = EventRecorder(self.bus)
        self.service = EchoService(self.bus, self.services)

    async def test_start_subscribes_and_stop_unsubscribes(self):
        await self.service.start()
        self.assertTrue(self.service.started)
        self.assertEqual(self.services.get_service_state("EchoService"), "running")

        await self.bus.publish(StageChangedEvent(
            stage="login", previous_stage="landing", trigger="logo_activated"), "machine")
        await self.service.stop()
        await self.bus.publish(StageChangedEvent(
            stage="landing", previous_stage="login", trigger="back"), "machine")

        self.assertTrue(self.service.stopped)
        self.assertEqual(self.service.seen, ["login"])
        self.assertEqual(self.services.get_service_state("EchoService"), "stopped")
        states = [e.state for e in self.recorder.of_type(EventType.SERVICE_STATE_CHANGED)]
        self.assertEqual(states, ["started", "stopping"])

    async def test_publish_while_stopped_is_dropped(self):
        await self.service.publish(LoginFailedEvent(message="nope"))
        self.assertEqual(self.recorder.of_type(EventType.LOGIN_FAILED), [])

    async def test_double_start_is_harmless(self):
        await self.service.start()
        await self.service.start()
        await self.bus.publish(StageChangedEvent(
            stage="login", previous_stage="landing", trigger="logo_activated"), "machine")
        self.assertEqual(self.service.seen, ["login"])
        await self.service.stop()

    def test_state_event_schema(self):
        self.assertIs(self.bus.registry.get_event_schema(EventType.SERVICE_STATE_CHANGED),
                      ServiceStateChangedEvent)


if __name__ == "__main__":
    unittest.main()
