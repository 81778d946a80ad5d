"""
Speech output controller.

At most one utterance is active at a time: speaking cancels whatever was
playing. Each utterance carries an estimated duration that drives the talking
avatar, because not every synthesizer reports when playback ends.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from buddy.core.bus import EventBus
from buddy.core.events import EventType
from buddy.core.registry import ServiceRegistry
from buddy.core.service import BaseService
from buddy.events.session import StageChangedEvent
from buddy.events.voice import UtteranceCancelledEvent, UtteranceStartedEvent
from buddy.models import Cohort, Stage
from buddy.platform.base import SpeechSynthesizer


@dataclass(frozen=True)
class VoiceParams:
    rate: float = 1.0
    pitch: float = 1.0
    volume: float = 1.0


DEFAULT_VOICE = VoiceParams()

VOICE_PARAMS: Dict[Cohort, VoiceParams] = {
    Cohort.KIDS: VoiceParams(rate=0.9, pitch=1.2),
    Cohort.TEENS: VoiceParams(rate=1.1),
    Cohort.SENIOR: VoiceParams(rate=0.85, volume=1.0),
}


def voice_params_for(cohort: Union[Cohort, str, None]) -> VoiceParams:
    """Voice settings for a cohort; young adults, adults and unknown values get the defaults."""
    if cohort is None:
        return DEFAULT_VOICE
    try:
        cohort = Cohort.parse(cohort)
    except ValueError:
        return DEFAULT_VOICE
    return VOICE_PARAMS.get(cohort, DEFAULT_VOICE)


class DurationEstimator(ABC):

    @abstractmethod
    def estimate_ms(self, text: str) -> int:
        """Estimated speaking time for text in milliseconds."""


class LinearDurationEstimator(DurationEstimator):
    """duration = len(text) * ms_per_char + base_ms"""

    def __init__(self, ms_per_char: int = 60, base_ms: int = 1000):
        self.ms_per_char = ms_per_char
        self.base_ms = base_ms

    def estimate_ms(self, text: str) -> int:
        return len(text) * self.ms_per_char + self.base_ms


@dataclass(frozen=True)
class Utterance:
    text: str
    cohort: Optional[str]
    params: VoiceParams
    duration_ms: int


class SpeechOutputController(BaseService):

    PRODUCES_EVENTS = {
        EventType.UTTERANCE_STARTED: {
            'schema': UtteranceStartedEvent,
            'description': "Synthesis of an utterance began"
        },
        EventType.UTTERANCE_CANCELLED: {
            'schema': UtteranceCancelledEvent,
            'description': "The active utterance was cut short"
        },
    }

    CONSUMES_EVENTS = {
        EventType.STAGE_CHANGED: 'handle_stage_changed',
    }

    def __init__(self,
                 event_bus: EventBus,
                 service_registry: ServiceRegistry,
                 synthesizer: SpeechSynthesizer,
                 estimator: Optional[DurationEstimator] = None,
                 name: Optional[str] = None,
                 config: Optional[Any] = None):
        super().__init__(event_bus, service_registry, name=name, config=config)
        self.synthesizer = synthesizer
        self.estimator = estimator or LinearDurationEstimator()
        self._current: Optional[Utterance] = None
        self._current_task: Optional[asyncio.Task] = None

    @property
    def current(self) -> Optional[Utterance]:
        return self._current

    @property
    def speaking(self) -> bool:
        return self._current is not None

    async def _on_stop(self) -> None:
        await self.cancel_speaking()

    async def handle_stage_changed(self, event: StageChangedEvent) -> None:
        if event.stage != Stage.DASHBOARD.value:
            await self.cancel_speaking()

    async def speak(self, text: str, cohort: Union[Cohort, str, None] = None) -> Utterance:
        """
        Start speaking text with the cohort's voice, replacing any active utterance.

        Returns as soon as synthesis has started.
        """
        await self.cancel_speaking()

        params = voice_params_for(cohort)
        cohort_value = cohort.value if isinstance(cohort, Cohort) else cohort
        utterance = Utterance(
            text=text,
            cohort=cohort_value,
            params=params,
            duration_ms=self.estimator.estimate_ms(text),
        )

        task = asyncio.create_task(
            self.synthesizer.speak(text, params.rate, params.pitch, params.volume)
        )
        self._current = utterance
        self._current_task = task
        task.add_done_callback(self._on_utterance_done)

        await self.publish(UtteranceStartedEvent(
            text=text,
            cohort=cohort_value or "",
            rate=params.rate,
            pitch=params.pitch,
            volume=params.volume,
            duration_ms=utterance.duration_ms,
        ))
        return utterance

    def _on_utterance_done(self, task: asyncio.Task) -> None:
        if task is self._current_task:
            self._current = None
            self._current_task = None
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.logger.error(f"Speech synthesis failed: {error}")

    async def cancel_speaking(self) -> None:
        """Stop the active utterance. Does nothing when silent."""
        utterance, task = self._current, self._current_task
        if utterance is None:
            return

        self._current = None
        self._current_task = None
        if task is not None and not task.done():
            task.cancel()
        await self.synthesizer.cancel()
        await self.publish(UtteranceCancelledEvent(text=utterance.text))

    async def wait_done(self) -> None:
        """Wait for the active utterance's playback to finish."""
        task = self._current_task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
