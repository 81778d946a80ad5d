"""
Platform capability interfaces for voice input and speech output.

The voice controllers never talk to audio devices or cloud APIs directly; they
go through the adapters declared here, so tests can substitute fakes and the
desktop build can plug in real devices.
"""

import asyncio
import structlog
from abc import ABC, abstractmethod
from typing import Any, AsyncContextManager, Dict, Optional


class PlatformAdapter(ABC):
    """
    Base class for platform adapters.

    Provides an initialize/shutdown lifecycle guarded by a lock, plus a bound
    structured logger.
    """

    def __init__(self, config: Optional[Any] = None, name: Optional[str] = None):
        self.config = config
        self.name = name or self.__class__.__name__
        self.logger = structlog.get_logger(platform=self.name)
        self._initialized = False
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        async with self._lock:
            if self._initialized:
                return
            try:
                await self._initialize_impl()
                self._initialized = True
                self.logger.info("Platform adapter initialized")
            except Exception as e:
                self.logger.error(f"Error initializing platform adapter: {e}")
                raise

    async def shutdown(self) -> None:
        async with self._lock:
            if not self._initialized:
                return
            try:
                await self._shutdown_impl()
            finally:
                self._initialized = False
                self.logger.info("Platform adapter shut down")

    def is_initialized(self) -> bool:
        return self._initialized

    async def _initialize_impl(self) -> None:
        """Adapter-specific setup. Default does nothing."""

    async def _shutdown_impl(self) -> None:
        """Adapter-specific cleanup. Default does nothing."""

    async def check_health(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "initialized": self._initialized,
            "status": "ok"
        }


class RecognitionSession(ABC):
    """A single listen-for-one-utterance cycle."""

    def __init__(self, locale: str):
        self.locale = locale

    @abstractmethod
    async def run(self) -> str:
        """
        Listen until one utterance has been recognized.

        Returns:
            The final transcript

        Raises:
            RecognitionError: With the recognition error code; codes for
                no-speech, aborted and network problems use TransientRecognitionError
        """

    @abstractmethod
    async def stop(self) -> None:
        """End the session early. run() then raises an 'aborted' error."""


class VoicePlatform(PlatformAdapter):
    """Capabilities needed for voice input."""

    @abstractmethod
    def is_secure_context(self) -> bool:
        """Whether audio may be sent to the recognizer over a trusted channel."""

    @abstractmethod
    def has_speech_recognition(self) -> bool:
        pass

    @abstractmethod
    def has_media_devices(self) -> bool:
        pass

    @abstractmethod
    def open_microphone(self) -> AsyncContextManager[None]:
        """
        Open an input stream for the duration of the context.

        Raises:
            MicrophoneError: kind 'permission', 'not_found' or 'other'
        """

    @abstractmethod
    def create_recognition_session(self,
                                   locale: str,
                                   single_utterance: bool = True,
                                   interim_results: bool = False) -> RecognitionSession:
        pass


class SpeechSynthesizer(PlatformAdapter):
    """Text-to-speech output."""

    @abstractmethod
    async def speak(self, text: str, rate: float, pitch: float, volume: float) -> None:
        """Synthesize and play text, returning when playback ends."""

    @abstractmethod
    async def cancel(self) -> None:
        """Stop playback immediately. Safe to call when idle."""


class NullSynthesizer(SpeechSynthesizer):
    """Logs utterances instead of playing them."""

    async def speak(self, text: str, rate: float, pitch: float, volume: float) -> None:
        self.logger.debug("Speak", text=text[:40], rate=rate, pitch=pitch, volume=volume)

    async def cancel(self) -> None:
        pass
