"""
ElevenLabs speech output.

The stream is requested as raw PCM, buffered, scaled by volume and played
through sounddevice. ElevenLabs has no pitch control, so pitch is applied by
playing back at a proportionally higher sample rate and the requested speed
is divided by pitch to keep the overall speaking rate.
"""

import asyncio
from typing import Optional

import numpy as np
import sounddevice as sd
from elevenlabs.client import AsyncElevenLabs

from buddy.core.config import SpeechConfig
from buddy.platform.base import SpeechSynthesizer

# Speed range accepted by the ElevenLabs voice settings
MIN_SPEED = 0.7
MAX_SPEED = 1.2


def pcm_to_float(pcm: bytes, volume: float) -> np.ndarray:
    """Convert 16-bit PCM to float32 samples scaled by volume."""
    samples = np.frombuffer(pcm, dtype=np.int16).astype(np.float32) / 32768.0
    return np.clip(samples * volume, -1.0, 1.0)


class ElevenLabsSynthesizer(SpeechSynthesizer):

    def __init__(self, config: SpeechConfig, name: Optional[str] = None):
        super().__init__(config, name)
        self._client: Optional[AsyncElevenLabs] = None

    async def _initialize_impl(self) -> None:
        if not self.config.elevenlabs_api_key:
            raise ValueError("ElevenLabs API key not configured")
        self._client = AsyncElevenLabs(api_key=self.config.elevenlabs_api_key)

    async def speak(self, text: str, rate: float, pitch: float, volume: float) -> None:
        await self.initialize()
        speed = min(max(rate / pitch, MIN_SPEED), MAX_SPEED)
        self.logger.info(f"Generating audio stream for text: '{text[:30]}...'", speed=speed)

        stream = self._client.text_to_speech.stream(
            text=text,
            voice_id=self.config.voice_id,
            model_id=self.config.model_id,
            output_format=f"pcm_{self.config.sample_rate}",
            voice_settings={"speed": speed},
        )
        pcm = b"".join([chunk async for chunk in stream])
        if not pcm:
            self.logger.warning("Received empty audio stream from ElevenLabs.")
            return

        sd.play(pcm_to_float(pcm, volume), samplerate=int(self.config.sample_rate * pitch))
        try:
            await asyncio.to_thread(sd.wait)
        except asyncio.CancelledError:
            sd.stop()
            raise

    async def cancel(self) -> None:
        sd.stop()
