"""
Dashboard conversation session.

One session runs per dashboard visit. It seeds the cohort's greeting, then
turns each typed or spoken message into a user turn, waits the thinking
delay, appends the engine's reply and speaks it. Replies are produced one at
a time in submission order.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Set

from buddy.core.bus import EventBus
from buddy.core.config import ConversationConfig
from buddy.core.events import EventType
from buddy.core.registry import ServiceRegistry
from buddy.core.service import BaseService
from buddy.events.conversation import ConversationTurnEvent
from buddy.i18n import translate
from buddy.models import Avatar, Cohort, ConversationTurn, Emotion, Profile, Speaker
from buddy.conversation.responses import ResponseEngine
from buddy.voice.avatar_sync import TalkingAvatarSync
from buddy.voice.capture import VoiceCaptureController, VoiceCaptureState
from buddy.voice.speech import SpeechOutputController

Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class DashboardVariant:
    """What differs between the cohort dashboards as far as chat is concerned."""
    cohort: Cohort
    greeting: Optional[str]  # None means the translated buddyGreeting

    def greet(self, name: str, language: Optional[str]) -> str:
        if self.greeting is None:
            return translate(language, "buddyGreeting", {"name": name})
        return self.greeting.format(name=name)


DASHBOARD_VARIANTS = {
    Cohort.KIDS: DashboardVariant(Cohort.KIDS, "Hi {name}! How are you feeling today? 😊"),
    Cohort.TEENS: DashboardVariant(
        Cohort.TEENS,
        "Hey {name}! How's your day going? I'm here if you want to talk about anything.",
    ),
    Cohort.YOUNG_ADULT: DashboardVariant(Cohort.YOUNG_ADULT, None),
    Cohort.ADULT: DashboardVariant(Cohort.ADULT, None),
    Cohort.SENIOR: DashboardVariant(
        Cohort.SENIOR,
        "Good day, dear {name}. How are you feeling today? I'm here to keep you company.",
    ),
}


class DashboardConversationSession(BaseService):
    """
    Chat transcript with turn-taking for one dashboard visit.

    The transcript starts with the cohort greeting and is append-only. Voice
    capture is optional; without it the session is text-only.
    """

    PRODUCES_EVENTS = {
        EventType.CONVERSATION_TURN: {
            'schema': ConversationTurnEvent,
            'description': "A turn was appended to the dashboard transcript"
        },
    }

    def __init__(self,
                 event_bus: EventBus,
                 service_registry: ServiceRegistry,
                 profile: Profile,
                 avatar: Avatar,
                 engine: ResponseEngine,
                 speech: SpeechOutputController,
                 avatar_sync: TalkingAvatarSync,
                 capture: Optional[VoiceCaptureController] = None,
                 config: Optional[ConversationConfig] = None,
                 sleep: Sleep = asyncio.sleep,
                 name: Optional[str] = None):
        super().__init__(event_bus, service_registry, name=name, config=config or ConversationConfig())
        self.profile = profile
        self.avatar = avatar
        self.engine = engine
        self.speech = speech
        self.avatar_sync = avatar_sync
        self.capture = capture
        self.variant = DASHBOARD_VARIANTS[profile.age_cohort]
        self._sleep = sleep
        self._turns: List[ConversationTurn] = []
        self._reply_lock = asyncio.Lock()
        self._pending: Set[asyncio.Task] = set()
        self._voice_mode = False
        self._closed = False

    @property
    def cohort(self) -> Cohort:
        return self.variant.cohort

    @property
    def language(self) -> str:
        return self.profile.preferred_language or self.config.default_language

    @property
    def turns(self) -> List[ConversationTurn]:
        return list(self._turns)

    @property
    def voice_mode(self) -> bool:
        return self._voice_mode

    async def _on_start(self) -> None:
        greeting = self.variant.greet(self.profile.name, self.language)
        await self._publish_turn(self._record(Speaker.COMPANION, greeting))

    async def _on_stop(self) -> None:
        self._closed = True
        for task in list(self._pending):
            task.cancel()
        self._voice_mode = False
        if self.capture is not None:
            await self.capture.stop_listening()
        await self.speech.cancel_speaking()
        await self.avatar_sync.stop_talking()

    async def close(self) -> None:
        """Cancel pending replies, speech and capture, and end the session."""
        if self.running:
            await self.stop()

    def _record(self, speaker: Speaker, text: str) -> int:
        self._turns.append(ConversationTurn(speaker=speaker, text=text))
        return len(self._turns) - 1

    async def _publish_turn(self, index: int) -> None:
        turn = self._turns[index]
        await self.publish(ConversationTurnEvent(
            speaker=turn.speaker.value,
            text=turn.text,
            index=index,
            cohort=self.cohort.value,
        ))

    async def send(self, text: str) -> Optional[ConversationTurn]:
        """
        Submit a user message and wait for the companion's reply.

        Blank messages are ignored. The reply runs in a task owned by the
        session, so closing the session cancels the reply but not the caller.

        Returns:
            The companion turn, or None if nothing was appended or the session
            closed before the reply
        """
        text = (text or "").strip()
        if not text or self._closed:
            return None

        user_index = self._record(Speaker.USER, text)
        task = asyncio.create_task(self._reply(user_index, text))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        if task.cancelled():
            return None
        return task.result()

    async def _reply(self, user_index: int, text: str) -> ConversationTurn:
        async with self._reply_lock:
            await self._publish_turn(user_index)
            await self._sleep(self.config.thinking_delay)
            reply = self.engine.select_response(text, self.cohort)
            reply_index = self._record(Speaker.COMPANION, reply)
            await self._publish_turn(reply_index)
            await self.speech.speak(reply, self.cohort)
            return self._turns[reply_index]

    # Voice

    async def listen(self) -> bool:
        """
        Start one voice capture; the transcript is sent as a user message.

        Returns:
            False when voice is unavailable or a capture is already running
        """
        if self.capture is None or self._closed:
            return False
        if self.capture.state is VoiceCaptureState.UNCHECKED:
            await self.capture.probe_availability()
        return await self.capture.start_listening(self.language, self._on_transcript)

    async def _on_transcript(self, transcript: str) -> None:
        await self.send(transcript)
        if self._voice_mode and not self._closed:
            await self.listen()

    async def stop_listening(self) -> None:
        if self.capture is not None:
            await self.capture.stop_listening()

    async def open_voice_mode(self) -> bool:
        """Hands-free mode: the avatar looks happy and listens again after each reply."""
        self._voice_mode = True
        await self.avatar_sync.set_emotion(Emotion.HAPPY)
        return await self.listen()

    async def close_voice_mode(self) -> None:
        self._voice_mode = False
        await self.stop_listening()
        await self.avatar_sync.set_emotion(Emotion.NEUTRAL)
