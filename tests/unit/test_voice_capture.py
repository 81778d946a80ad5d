"""
Unit tests for the voice capture controller.
"""

import asyncio
import os
import sys
import unittest
from unittest.mock import AsyncMock, MagicMock

sys.path.insert(0, os.path.dirname(__file__))

from fakes import EventRecorder, FakeVoicePlatform, make_bus, settle

from buddy.core.errors import MicrophoneError, RecognitionError, TransientRecognitionError
from buddy.core.events import EventType
from buddy.events.session import StageChangedEvent
from buddy.voice.capture import (
    INSECURE_CONTEXT,
    MICROPHONE_BLOCKED,
    MICROPHONE_FAILED,
    MICROPHONE_NOT_FOUND,
    NO_MEDIA_DEVICES,
    NO_SPEECH_RECOGNITION,
    VoiceCaptureController,
    VoiceCaptureState,
)


class CaptureTestCase(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.bus, self.services = make_bus()
        self.recorder = EventRecorder(self.bus)
        self.platform = FakeVoicePlatform()
        self.capture = VoiceCaptureController(self.bus, self.services, platform=self.platform)
        await self.capture.start()

    async def asyncTearDown(self):
        await self.capture.stop()

    def states(self):
        return [e.state for e in self.recorder.of_type(EventType.VOICE_CAPTURE_STATE_CHANGED)]

    async def listening(self, language="English", callback=None):
        await self.capture.probe_availability()
        self.callback = callback or MagicMock()
        self.assertTrue(await self.capture.start_listening(language, self.callback))
        return self.platform.last_session


class TestAvailability(CaptureTestCase):

    async def test_probe_success_goes_idle(self):
        self.assertEqual(self.capture.state, VoiceCaptureState.UNCHECKED)

        state = await self.capture.probe_availability()

        self.assertEqual(state, VoiceCaptureState.IDLE)
        self.assertTrue(self.capture.available)
        self.assertIsNone(self.capture.reason)
        self.assertEqual(self.states(), ["checking", "idle"])
        self.assertEqual(self.platform.mic_opens, 1)

    async def test_unavailable_reasons_in_check_order(self):
        cases = [
            (dict(secure=False, recognition=False, media=False), INSECURE_CONTEXT),
            (dict(recognition=False, media=False), NO_SPEECH_RECOGNITION),
            (dict(media=False), NO_MEDIA_DEVICES),
            (dict(mic_error=MicrophoneError("denied", kind="permission")), MICROPHONE_BLOCKED),
            (dict(mic_error=MicrophoneError("no device", kind="not_found")), MICROPHONE_NOT_FOUND),
            (dict(mic_error=MicrophoneError("busy")), MICROPHONE_FAILED),
        ]
        for kwargs, reason in cases:
            with self.subTest(reason=reason):
                self.capture.platform = FakeVoicePlatform(**kwargs)
                state = await self.capture.probe_availability()
                self.assertEqual(state, VoiceCaptureState.UNAVAILABLE)
                self.assertEqual(self.capture.reason, reason)
                self.assertFalse(self.capture.available)

    async def test_failed_early_checks_never_touch_microphone(self):
        self.capture.platform = FakeVoicePlatform(media=False)
        await self.capture.probe_availability()
        self.assertEqual(self.capture.platform.mic_opens, 0)

    async def test_concurrent_probes_share_one_check(self):
        self.platform.mic_gate = asyncio.Event()

        first = asyncio.create_task(self.capture.probe_availability())
        second = asyncio.create_task(self.capture.probe_availability())
        await settle()
        self.assertEqual(self.capture.state, VoiceCaptureState.CHECKING)

        self.platform.mic_gate.set()
        results = await asyncio.gather(first, second)

        self.assertEqual(results, [VoiceCaptureState.IDLE, VoiceCaptureState.IDLE])
        self.assertEqual(self.platform.mic_opens, 1)
        self.assertEqual(self.states(), ["checking", "idle"])

    async def test_reprobe_after_unavailable(self):
        self.capture.platform = FakeVoicePlatform(media=False)
        await self.capture.probe_availability()

        self.capture.platform = FakeVoicePlatform()
        self.assertEqual(await self.capture.probe_availability(), VoiceCaptureState.IDLE)
        self.assertIsNone(self.capture.reason)

    async def test_probe_while_listening_ends_the_session(self):
        session = await self.listening()

        await self.capture.probe_availability()

        self.assertTrue(session.stopped)
        self.assertEqual(self.capture.state, VoiceCaptureState.IDLE)
        self.callback.assert_not_called()


class TestListening(CaptureTestCase):

    async def test_start_rejected_unless_idle(self):
        self.assertFalse(await self.capture.start_listening("English", MagicMock()))
        self.assertEqual(self.platform.sessions, [])

        await self.listening()
        self.assertFalse(await self.capture.start_listening("English", MagicMock()))
        self.assertEqual(len(self.platform.sessions), 1)

    async def test_session_uses_language_locale(self):
        session = await self.listening("Hindi")

        self.assertEqual(session.locale, "hi-IN")
        self.assertTrue(session.single_utterance)
        self.assertFalse(session.interim_results)
        self.assertEqual(self.capture.state, VoiceCaptureState.LISTENING)

    async def test_unknown_language_falls_back_to_en_us(self):
        session = await self.listening("Klingon")
        self.assertEqual(session.locale, "en-US")

    async def test_transcript_returns_to_idle_then_calls_back(self):
        seen_states = []
        callback = MagicMock(side_effect=lambda text: seen_states.append(self.capture.state))
        session = await self.listening(callback=callback)

        session.deliver("tell me a story")
        await settle()

        callback.assert_called_once_with("tell me a story")
        self.assertEqual(seen_states, [VoiceCaptureState.IDLE])
        received = self.recorder.of_type(EventType.TRANSCRIPT_RECEIVED)
        self.assertEqual(received[0].transcript, "tell me a story")
        self.assertEqual(received[0].locale, "en-US")

    async def test_async_callback_is_awaited(self):
        callback = AsyncMock()
        session = await self.listening(callback=callback)

        session.deliver("hello")
        await settle()

        callback.assert_awaited_once_with("hello")

    async def test_callback_error_is_logged_not_raised(self):
        session = await self.listening(callback=MagicMock(side_effect=RuntimeError("boom")))

        session.deliver("hello")
        await settle()

        self.assertEqual(self.capture.state, VoiceCaptureState.IDLE)

    async def test_no_speech_is_swallowed(self):
        session = await self.listening()

        session.fail(TransientRecognitionError("no-speech"))
        await settle()

        self.assertEqual(self.capture.state, VoiceCaptureState.IDLE)
        self.callback.assert_not_called()
        self.assertIsNone(self.capture.reason)

    async def test_permission_revoked_makes_voice_unavailable(self):
        session = await self.listening()

        session.fail(RecognitionError("not-allowed"))
        await settle()

        self.assertEqual(self.capture.state, VoiceCaptureState.UNAVAILABLE)
        self.assertEqual(self.capture.reason, MICROPHONE_BLOCKED)
        self.assertFalse(await self.capture.start_listening("English", MagicMock()))

    async def test_other_recognition_errors_return_to_idle(self):
        session = await self.listening()

        session.fail(RecognitionError("audio-capture"))
        await settle()

        self.assertEqual(self.capture.state, VoiceCaptureState.IDLE)

    async def test_unexpected_session_failure_returns_to_idle(self):
        session = await self.listening()

        session.fail(OSError("device unplugged"))
        await settle()

        self.assertEqual(self.capture.state, VoiceCaptureState.IDLE)
        self.assertTrue(await self.capture.start_listening("English", lambda text: None))

    async def test_stop_listening_when_idle_does_nothing(self):
        await self.capture.probe_availability()
        before = len(self.recorder.events)

        await self.capture.stop_listening()

        self.assertEqual(len(self.recorder.events), before)
        self.assertEqual(self.capture.state, VoiceCaptureState.IDLE)

    async def test_stop_listening_discards_late_transcript(self):
        session = await self.listening()

        await self.capture.stop_listening()
        await settle()

        self.assertTrue(session.stopped)
        self.assertEqual(self.capture.state, VoiceCaptureState.IDLE)
        self.callback.assert_not_called()
        self.assertEqual(self.recorder.of_type(EventType.TRANSCRIPT_RECEIVED), [])

    async def test_leaving_dashboard_stops_listening(self):
        self.bus.registry.register_event(
            EventType.STAGE_CHANGED, StageChangedEvent, "Onboarding stage changed")
        session = await self.listening()

        await self.bus.publish(StageChangedEvent(
            stage="login", previous_stage="dashboard", trigger="session_expired",
        ), "test")
        await settle()

        self.assertTrue(session.stopped)
        self.assertEqual(self.capture.state, VoiceCaptureState.IDLE)

    async def test_dashboard_stage_keeps_listening(self):
        session = await self.listening()

        await self.capture.handle_stage_changed(StageChangedEvent(
            stage="dashboard", previous_stage="creatingAvatar", trigger="avatar_completed",
        ))

        self.assertFalse(session.stopped)
        self.assertEqual(self.capture.state, VoiceCaptureState.LISTENING)


if __name__ == "__main__":
    unittest.main()
