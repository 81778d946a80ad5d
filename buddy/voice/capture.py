"""
Voice capture controller.

Availability is probed once (or again on request) through four checks in
order: secure channel to the recognizer, recognizer present, audio devices
present, and a transient microphone open. The first failing check decides the
unavailable reason. After a successful probe the controller alternates
between idle and listening, one single-utterance capture session at a time.
"""

import asyncio
import inspect
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from buddy.core.bus import EventBus
from buddy.core.errors import MicrophoneError, RecognitionError, TransientRecognitionError
from buddy.core.events import EventType
from buddy.core.registry import ServiceRegistry
from buddy.core.service import BaseService
from buddy.events.session import StageChangedEvent
from buddy.events.voice import TranscriptReceivedEvent, VoiceCaptureStateChangedEvent
from buddy.i18n import resolve_locale
from buddy.models import Stage
from buddy.platform.base import RecognitionSession, VoicePlatform

INSECURE_CONTEXT = "Voice input requires a secure connection (HTTPS or localhost)."
NO_SPEECH_RECOGNITION = "Speech recognition is not available. Configure a recognizer to use voice input."
NO_MEDIA_DEVICES = "Audio device support is not available on this system."
MICROPHONE_BLOCKED = "Microphone access is blocked. Allow microphone access and try again."
MICROPHONE_NOT_FOUND = "No microphone found. Please connect a microphone."
MICROPHONE_FAILED = "Unable to access microphone. Check your audio settings and try again."

MICROPHONE_REASONS = {
    "permission": MICROPHONE_BLOCKED,
    "not_found": MICROPHONE_NOT_FOUND,
}

TranscriptCallback = Callable[[str], Union[None, Awaitable[None]]]


class VoiceCaptureState(str, Enum):
    UNCHECKED = "unchecked"
    CHECKING = "checking"
    UNAVAILABLE = "unavailable"
    IDLE = "idle"
    LISTENING = "listening"


class VoiceCaptureController(BaseService):
    """
    Owns the microphone and the current recognition session.

    Text input never depends on this controller; when voice is unavailable the
    reason is exposed for display and every listening request is refused.
    """

    PRODUCES_EVENTS = {
        EventType.VOICE_CAPTURE_STATE_CHANGED: {
            'schema': VoiceCaptureStateChangedEvent,
            'description': "The voice capture state changed"
        },
        EventType.TRANSCRIPT_RECEIVED: {
            'schema': TranscriptReceivedEvent,
            'description': "A capture session recognized an utterance"
        },
    }

    CONSUMES_EVENTS = {
        EventType.STAGE_CHANGED: 'handle_stage_changed',
    }

    def __init__(self,
                 event_bus: EventBus,
                 service_registry: ServiceRegistry,
                 platform: VoicePlatform,
                 name: Optional[str] = None,
                 config: Optional[Any] = None):
        super().__init__(event_bus, service_registry, name=name, config=config)
        self.platform = platform
        self._state = VoiceCaptureState.UNCHECKED
        self._reason: Optional[str] = None
        self._probe: Optional[asyncio.Task] = None
        self._session: Optional[RecognitionSession] = None
        self._listen_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> VoiceCaptureState:
        return self._state

    @property
    def reason(self) -> Optional[str]:
        """Why voice is unavailable; None in every other state."""
        return self._reason

    @property
    def available(self) -> bool:
        return self._state in (VoiceCaptureState.IDLE, VoiceCaptureState.LISTENING)

    async def _on_stop(self) -> None:
        await self.stop_listening()
        if self._probe is not None:
            self._probe.cancel()

    async def handle_stage_changed(self, event: StageChangedEvent) -> None:
        if event.stage != Stage.DASHBOARD.value:
            await self.stop_listening()

    async def _set_state(self, state: VoiceCaptureState, reason: Optional[str] = None) -> None:
        previous = self._state
        self._state = state
        self._reason = reason if state is VoiceCaptureState.UNAVAILABLE else None
        if previous is state and reason is None:
            return
        self.logger.info("Voice capture state changed", state=state.value, previous=previous.value, reason=reason)
        await self.publish(VoiceCaptureStateChangedEvent(
            state=state.value,
            previous_state=previous.value,
            reason=self._reason,
        ))

    # Availability

    async def probe_availability(self) -> VoiceCaptureState:
        """
        Run the availability checks and return the resulting state.

        Concurrent calls share one in-flight probe. Probing while listening
        ends the capture session first.
        """
        if self._probe is None:
            probe = asyncio.ensure_future(self._run_probe())
            self._probe = probe
            probe.add_done_callback(self._on_probe_done)
        return await asyncio.shield(self._probe)

    def _on_probe_done(self, probe: asyncio.Task) -> None:
        if self._probe is probe:
            self._probe = None

    async def _run_probe(self) -> VoiceCaptureState:
        await self.stop_listening()
        await self._set_state(VoiceCaptureState.CHECKING)

        reason = await self._check()
        if reason is None:
            await self._set_state(VoiceCaptureState.IDLE)
        else:
            await self._set_state(VoiceCaptureState.UNAVAILABLE, reason)
        return self._state

    async def _check(self) -> Optional[str]:
        if not self.platform.is_secure_context():
            return INSECURE_CONTEXT
        if not self.platform.has_speech_recognition():
            return NO_SPEECH_RECOGNITION
        if not self.platform.has_media_devices():
            return NO_MEDIA_DEVICES

        try:
            async with self.platform.open_microphone():
                pass
        except MicrophoneError as e:
            self.logger.error(f"Microphone access check failed: {e.message}", kind=e.kind)
            return MICROPHONE_REASONS.get(e.kind, MICROPHONE_FAILED)
        return None

    # Listening

    async def start_listening(self, language: Optional[str], on_transcript: TranscriptCallback) -> bool:
        """
        Open a single-utterance capture session.

        on_transcript receives the final transcript after the controller is
        back to idle; it may be a plain function or a coroutine function.

        Returns:
            False, without side effects, unless the controller is idle
        """
        if self._state is not VoiceCaptureState.IDLE:
            self.logger.debug("Start listening rejected", state=self._state.value)
            return False

        locale = resolve_locale(language)
        session = self.platform.create_recognition_session(locale, single_utterance=True, interim_results=False)
        self._session = session
        self._listen_task = asyncio.create_task(self._listen(session, on_transcript))
        await self._set_state(VoiceCaptureState.LISTENING)
        return True

    async def stop_listening(self) -> None:
        """End the current capture session. Does nothing when not listening."""
        if self._state is not VoiceCaptureState.LISTENING:
            return

        session, task = self._session, self._listen_task
        self._session = None
        self._listen_task = None
        await self._set_state(VoiceCaptureState.IDLE)

        if session is not None:
            await session.stop()
        if task is not None and not task.done():
            task.cancel()

    async def _listen(self, session: RecognitionSession, on_transcript: TranscriptCallback) -> None:
        try:
            transcript = await session.run()
        except TransientRecognitionError as e:
            self.logger.debug("Recognition ended without a result", code=e.code)
            await self._finish(session)
            return
        except RecognitionError as e:
            self.logger.error(f"Speech recognition error: {e.code}")
            if e.is_permission_revoked and self._session is session:
                self._session = None
                self._listen_task = None
                await self._set_state(VoiceCaptureState.UNAVAILABLE, MICROPHONE_BLOCKED)
            else:
                await self._finish(session)
            return
        except Exception as e:
            self.logger.error(f"Speech recognition failed: {e}", exc_info=True)
            await self._finish(session)
            return

        if not await self._finish(session):
            return

        await self.publish(TranscriptReceivedEvent(transcript=transcript, locale=session.locale))
        try:
            result = on_transcript(transcript)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self.logger.error(f"Error in transcript callback: {e}")

    async def _finish(self, session: RecognitionSession) -> bool:
        """Return to idle if session is still the current one."""
        if self._session is not session:
            return False
        self._session = None
        self._listen_task = None
        await self._set_state(VoiceCaptureState.IDLE)
        return True
