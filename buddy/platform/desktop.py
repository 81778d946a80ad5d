"""
Desktop voice input: sounddevice microphone capture with Whisper transcription.

A recognition session records a single utterance. It waits for the input level
to cross the silence threshold, keeps recording until enough trailing silence
has passed, then sends the clip to the OpenAI transcription endpoint as WAV.
"""

import asyncio
import io
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional
from urllib.parse import urlparse

import numpy as np
import openai
import soundfile as sf
from openai import OpenAI

from buddy.core.config import CaptureConfig, RecognizerBackend
from buddy.core.errors import MicrophoneError, RecognitionError, TransientRecognitionError
from buddy.platform.base import RecognitionSession, VoicePlatform

LOCAL_HOSTS = ("localhost", "127.0.0.1", "::1")

# Seconds without any audio block before capture is considered broken
BLOCK_TIMEOUT = 2.0


def load_sounddevice():
    """Import sounddevice, or return None when PortAudio is not installed."""
    try:
        import sounddevice
    except OSError:
        return None
    return sounddevice


class DesktopVoicePlatform(VoicePlatform):
    """Voice input for a desktop build, configured by CaptureConfig."""

    def __init__(self, config: CaptureConfig, name: Optional[str] = None):
        super().__init__(config, name)
        self._client: Optional[OpenAI] = None
        self._sd = None

    @property
    def sounddevice(self):
        if self._sd is None:
            self._sd = load_sounddevice()
        return self._sd

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(api_key=self.config.openai_api_key, base_url=self.config.endpoint)
        return self._client

    def is_secure_context(self) -> bool:
        url = urlparse(self.config.endpoint)
        return url.scheme == "https" or url.hostname in LOCAL_HOSTS

    def has_speech_recognition(self) -> bool:
        return (self.config.recognizer == RecognizerBackend.WHISPER
                and bool(self.config.openai_api_key))

    def has_media_devices(self) -> bool:
        return self.sounddevice is not None

    def _has_input_device(self) -> bool:
        try:
            devices = self.sounddevice.query_devices()
        except self.sounddevice.PortAudioError:
            return False
        return any(device.get("max_input_channels", 0) > 0 for device in devices)

    def _classify(self, error: Exception) -> str:
        message = str(error).lower()
        if "permission" in message or "denied" in message or "not allowed" in message:
            return "permission"
        if not self._has_input_device():
            return "not_found"
        return "other"

    def input_stream(self, callback=None):
        """Build (but do not start) an input stream with the configured format."""
        return self.sounddevice.InputStream(
            samplerate=self.config.sample_rate,
            channels=self.config.channels,
            dtype="float32",
            blocksize=self.config.block_size,
            device=self.config.input_device,
            callback=callback,
        )

    @asynccontextmanager
    async def open_microphone(self) -> AsyncIterator[None]:
        sd = self.sounddevice
        if sd is None:
            raise MicrophoneError("PortAudio library not found", kind="other")

        def _open():
            stream = self.input_stream()
            stream.start()
            return stream

        try:
            stream = await asyncio.to_thread(_open)
        except (sd.PortAudioError, ValueError) as e:
            raise MicrophoneError(str(e), kind=self._classify(e)) from e

        try:
            yield
        finally:
            await asyncio.to_thread(stream.close)

    def create_recognition_session(self,
                                   locale: str,
                                   single_utterance: bool = True,
                                   interim_results: bool = False) -> RecognitionSession:
        # Whisper only produces final transcripts of a single clip
        return WhisperRecognitionSession(self, locale)


class WhisperRecognitionSession(RecognitionSession):

    def __init__(self, platform: DesktopVoicePlatform, locale: str):
        super().__init__(locale)
        self._platform = platform
        self._config: CaptureConfig = platform.config
        self._blocks: asyncio.Queue = asyncio.Queue()
        self._stopped = False

    async def run(self) -> str:
        audio = await self._capture()
        return await self._transcribe(audio)

    async def stop(self) -> None:
        self._stopped = True
        self._blocks.put_nowait(None)

    async def _capture(self) -> np.ndarray:
        sd = self._platform.sounddevice
        if sd is None:
            raise RecognitionError("audio-capture", "PortAudio library not found")

        loop = asyncio.get_running_loop()

        def callback(indata, frames, time_info, status):
            loop.call_soon_threadsafe(self._blocks.put_nowait, indata[:, 0].copy())

        try:
            stream = self._platform.input_stream(callback)
            stream.start()
        except (sd.PortAudioError, ValueError) as e:
            if self._platform._classify(e) == "permission":
                raise RecognitionError("not-allowed", str(e)) from e
            raise RecognitionError("audio-capture", str(e)) from e

        try:
            return await self._collect()
        finally:
            stream.stop()
            stream.close()

    async def _collect(self) -> np.ndarray:
        rate = self._config.sample_rate
        frames: List[np.ndarray] = []
        heard = False
        elapsed = 0.0
        silent = 0.0

        while True:
            try:
                block = await asyncio.wait_for(self._blocks.get(), timeout=BLOCK_TIMEOUT)
            except asyncio.TimeoutError:
                raise RecognitionError("audio-capture", "No audio received from the microphone") from None
            if block is None or self._stopped:
                raise TransientRecognitionError("aborted")

            seconds = len(block) / rate
            elapsed += seconds
            level = float(np.sqrt(np.mean(np.square(block)))) if len(block) else 0.0

            if level >= self._config.silence_threshold:
                heard = True
                silent = 0.0
            elif heard:
                silent += seconds

            if heard:
                frames.append(block)
                if silent >= self._config.trailing_silence or elapsed >= self._config.max_utterance:
                    return np.concatenate(frames)
            elif elapsed >= self._config.no_speech_timeout:
                raise TransientRecognitionError("no-speech")

    async def _transcribe(self, audio: np.ndarray) -> str:
        buffer = io.BytesIO()
        sf.write(buffer, audio, self._config.sample_rate, format="WAV", subtype="PCM_16")

        try:
            result = await asyncio.to_thread(
                self._platform.client.audio.transcriptions.create,
                model=self._config.model,
                file=("utterance.wav", buffer.getvalue()),
                language=self.locale.split("-")[0],
            )
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            raise RecognitionError("service-not-allowed", str(e)) from e
        except openai.APIError as e:
            raise TransientRecognitionError("network", str(e)) from e

        if self._stopped:
            raise TransientRecognitionError("aborted")
        text = (result.text or "").strip()
        if not text:
            raise TransientRecognitionError("no-speech")
        return text
