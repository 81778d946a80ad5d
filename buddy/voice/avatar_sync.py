"""
Talking avatar state.

The avatar talks for exactly the estimated duration of each utterance. A new
utterance restarts the window; a cancelled one ends it at once. The emotion
tag is set by whoever owns the current context and only affects animation.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from buddy.core.bus import EventBus
from buddy.core.events import EventType
from buddy.core.registry import ServiceRegistry
from buddy.core.service import BaseService
from buddy.events.voice import (
    AvatarStateChangedEvent,
    UtteranceCancelledEvent,
    UtteranceStartedEvent,
)
from buddy.models import Emotion

Sleep = Callable[[float], Awaitable[Any]]


class TalkingAvatarSync(BaseService):

    PRODUCES_EVENTS = {
        EventType.AVATAR_STATE_CHANGED: {
            'schema': AvatarStateChangedEvent,
            'description': "The avatar started or stopped talking, or changed emotion"
        },
    }

    CONSUMES_EVENTS = {
        EventType.UTTERANCE_STARTED: 'handle_utterance_started',
        EventType.UTTERANCE_CANCELLED: 'handle_utterance_cancelled',
    }

    def __init__(self,
                 event_bus: EventBus,
                 service_registry: ServiceRegistry,
                 sleep: Sleep = asyncio.sleep,
                 name: Optional[str] = None,
                 config: Optional[Any] = None):
        super().__init__(event_bus, service_registry, name=name, config=config)
        self._sleep = sleep
        self._is_talking = False
        self._emotion = Emotion.NEUTRAL
        self._timer: Optional[asyncio.Task] = None

    @property
    def is_talking(self) -> bool:
        return self._is_talking

    @property
    def emotion(self) -> Emotion:
        return self._emotion

    async def _on_stop(self) -> None:
        await self.stop_talking()

    async def handle_utterance_started(self, event: UtteranceStartedEvent) -> None:
        await self.start_talking(event.duration_ms)

    async def handle_utterance_cancelled(self, event: UtteranceCancelledEvent) -> None:
        await self.stop_talking()

    async def set_emotion(self, emotion: Emotion) -> None:
        emotion = Emotion(emotion)
        if emotion is self._emotion:
            return
        self._emotion = emotion
        await self._publish_state()

    async def start_talking(self, duration_ms: int) -> None:
        """Talk for duration_ms from now, replacing any running window."""
        self._cancel_timer()
        self._is_talking = True
        self._timer = asyncio.create_task(self._talk_for(duration_ms / 1000.0))
        await self._publish_state()

    async def stop_talking(self) -> None:
        self._cancel_timer()
        if self._is_talking:
            self._is_talking = False
            await self._publish_state()

    async def wait_quiet(self) -> None:
        """Wait until the current talking window has elapsed."""
        timer = self._timer
        if timer is not None:
            await asyncio.gather(timer, return_exceptions=True)

    async def _talk_for(self, seconds: float) -> None:
        await self._sleep(seconds)
        self._timer = None
        self._is_talking = False
        await self._publish_state()

    def _cancel_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None and not timer.done():
            timer.cancel()

    async def _publish_state(self) -> None:
        await self.publish(AvatarStateChangedEvent(
            is_talking=self._is_talking,
            emotion=self._emotion.value,
        ))
